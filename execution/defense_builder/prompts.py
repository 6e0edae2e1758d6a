"""
Prompt Templates, Tool Schemas and User Messages for the Defense Builder

All prompt text and user-facing strings organized by language.
Modules import from here instead of defining prompts inline.
"""

# =============================================================================
# Tool (function-calling) schemas
# =============================================================================

EXTRACT_CLAIMS_TOOL = {
    "name": "extract_claims",
    "description": "Extract worker claims from the complaint document",
    "parameters": {
        "type": "object",
        "properties": {
            "claims": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "claim_type": {
                            "type": "string",
                            "description": "Claim type (e.g. unpaid overtime, unlawful dismissal, severance pay)",
                        },
                        "description": {
                            "type": "string",
                            "description": "Short description of the claim",
                        },
                        "amount_claimed": {
                            "type": "string",
                            "description": "Amount or extent claimed, if stated",
                        },
                    },
                    "required": ["claim_type", "description"],
                },
            },
        },
        "required": ["claims"],
    },
}

ANALYZE_EVIDENCE_GAP_TOOL = {
    "name": "analyze_evidence_gap",
    "description": "Analyze gaps between required and provided evidence",
    "parameters": {
        "type": "object",
        "properties": {
            "evidence_analysis": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "claim_type": {"type": "string"},
                        "required_evidence": {"type": "array", "items": {"type": "string"}},
                        "provided_evidence": {"type": "array", "items": {"type": "string"}},
                        "missing_evidence": {"type": "array", "items": {"type": "string"}},
                        "legal_basis": {"type": "string", "description": "Governing legal article"},
                    },
                },
            },
            "follow_up_questions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "question": {"type": "string", "description": "Question for the employer"},
                        "reason": {"type": "string", "description": "Why this evidence matters"},
                        "related_article": {"type": "string"},
                    },
                },
            },
            "can_proceed": {
                "type": "boolean",
                "description": "Whether the evidence is sufficient to proceed",
            },
        },
        "required": ["evidence_analysis", "follow_up_questions", "can_proceed"],
    },
}

GENERATE_VERDICT_TOOL = {
    "name": "generate_verdict",
    "description": "Generate case verdict and strategy recommendation",
    "parameters": {
        "type": "object",
        "properties": {
            "risk_score": {
                "type": "number",
                "description": "Probability of losing from 0 to 100 (100 = certain loss)",
            },
            "risk_level": {
                "type": "string",
                "enum": ["low", "medium", "high", "critical"],
                "description": "Overall risk level",
            },
            "recommendation": {
                "type": "string",
                "enum": ["fight", "settle", "needs_more_info"],
                "description": "fight = defend, settle = negotiate, needs_more_info = more evidence required",
            },
            "reasoning": {
                "type": "string",
                "description": "Detailed reasoning behind the assessment",
            },
            "key_strengths": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Strengths of the employer's case",
            },
            "key_weaknesses": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Weaknesses of the employer's case",
            },
            "defense_bill": {
                "type": "string",
                "description": "Full text of the defense bill (only when recommendation is fight)",
            },
            "settlement_advice": {
                "type": "string",
                "description": "Settlement advice (only when recommendation is settle)",
            },
        },
        "required": ["risk_score", "risk_level", "recommendation", "reasoning"],
    },
}


# =============================================================================
# Prompt templates
# =============================================================================

LLM_PROMPTS = {
    "fa": {
        "extract_claims": """شما یک تحلیلگر حقوقی هستید. از دادخواست زیر، ادعاهای اصلی کارگر را استخراج کنید.

دادخواست:
{complaint}

{additional_info}

لطفاً با استفاده از تابع extract_claims ادعاها را استخراج کنید.""",

        "additional_info": "اطلاعات تکمیلی: {info}",
        "continue_conversation": "ادامه مکالمه قبلی",

        "gap_analysis": """شما یک وکیل کار متخصص هستید. باید مدارک کارفرما را با الزامات قانونی مقایسه کنید.

## ادعاهای کارگر:
{claims}

## مواد قانونی مرتبط:
{statutes}

## مدارک ارائه شده توسط کارفرما:
{evidence}
{evidence_contents}

لطفاً تحلیل کنید:
1. برای هر ادعا، چه مدارکی طبق قانون لازم است؟
2. کدام مدارک ضروری موجود نیستند؟
3. سوالات دقیق برای دریافت مدارک ناقص

از تابع analyze_evidence_gap استفاده کنید.""",

        "statute_line": "- ماده {article} ({category}): {content}...",
        "unknown_article": "نامشخص",
        "no_evidence": "مدرکی آپلود نشده است",
        "evidence_content": "\n--- محتوای {name} ---\n{content}",
        "evidence_placeholder": "[محتوای فایل]",

        "verdict": """شما یک وکیل باتجربه دیوان عدالت اداری هستید. باید احتمال برد/باخت پرونده را ارزیابی کنید.

## ادعاهای کارگر:
{claims}

## تحلیل مدارک:
{evidence_analysis}

## مدارک موجود:
{evidence}

## مدارک ناقص:
{missing_evidence}

بر اساس تجربه، ارزیابی کنید:
1. احتمال باخت (0-100) - بر اساس قوت مدارک
2. توصیه استراتژیک: دفاع قاطع یا سازش
3. اگر توصیه دفاع است، متن لایحه دفاعیه

از تابع generate_verdict استفاده کنید.""",

        "none": "ندارد",
        "unknown_claim_description": "ادعاهای دادخواست قابل استخراج نبود",
        "verdict_incomplete": "تحلیل کامل نشد",
    },
    "en": {
        "extract_claims": """You are a legal analyst. Extract the worker's main claims from the complaint below.

Complaint:
{complaint}

{additional_info}

Use the extract_claims function to return the claims.""",

        "additional_info": "Additional information: {info}",
        "continue_conversation": "Continue the previous conversation",

        "gap_analysis": """You are an employment lawyer. Compare the employer's evidence against the legal requirements.

## Worker's claims:
{claims}

## Relevant legal articles:
{statutes}

## Evidence provided by the employer:
{evidence}
{evidence_contents}

Please analyze:
1. For each claim, which evidence does the law require?
2. Which essential evidence is missing?
3. Precise questions to obtain the missing evidence

Use the analyze_evidence_gap function.""",

        "statute_line": "- Article {article} ({category}): {content}...",
        "unknown_article": "unknown",
        "no_evidence": "No evidence uploaded",
        "evidence_content": "\n--- Content of {name} ---\n{content}",
        "evidence_placeholder": "[file content]",

        "verdict": """You are an experienced administrative court lawyer. Assess the probability of winning or losing this case.

## Worker's claims:
{claims}

## Evidence analysis:
{evidence_analysis}

## Available evidence:
{evidence}

## Missing evidence:
{missing_evidence}

Based on experience, assess:
1. Probability of losing (0-100) based on the strength of the evidence
2. Strategic recommendation: firm defense or settlement
3. If the recommendation is to defend, the text of the defense bill

Use the generate_verdict function.""",

        "none": "None",
        "unknown_claim_description": "The complaint's claims could not be extracted",
        "verdict_incomplete": "Analysis was not completed",
    },
}


# =============================================================================
# User-facing error messages
# =============================================================================

ERROR_MESSAGES = {
    "fa": {
        "generic": "خطای ناشناخته",
        "invalid_input": "دادخواست یا تاریخچه مکالمه الزامی است",
        "configuration": "پیکربندی سرویس ناقص است",
        "service_busy": "سرویس شلوغ است، لطفاً کمی صبر کنید",
        "retrieval_unavailable": "جستجوی مواد قانونی در دسترس نیست",
        "rate_limited": "محدودیت درخواست. لطفاً کمی صبر کنید.",
        "claims_failed": "استخراج ادعاها از دادخواست ناموفق بود",
        "verdict_failed": "تولید ارزیابی پرونده ناموفق بود",
    },
    "en": {
        "generic": "Unknown error",
        "invalid_input": "complaint document or conversation history is required",
        "configuration": "Service is not fully configured",
        "service_busy": "The analysis service is busy, please wait a moment",
        "retrieval_unavailable": "Legal article search is unavailable",
        "rate_limited": "Too many requests. Please wait a moment.",
        "claims_failed": "Failed to extract claims from complaint",
        "verdict_failed": "Failed to generate verdict",
    },
}


def get_prompts(language: str) -> dict:
    """Return prompt templates for a language, falling back to Persian."""
    return LLM_PROMPTS.get(language, LLM_PROMPTS["fa"])


def get_error_message(key: str, language: str) -> str:
    """Return a localized user-facing error message."""
    messages = ERROR_MESSAGES.get(language, ERROR_MESSAGES["fa"])
    return messages.get(key, messages["generic"])
