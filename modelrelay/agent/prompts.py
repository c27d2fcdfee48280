"""Chat system prompts and user-facing localized messages."""

import re
from typing import Dict

from modelrelay.agent.schemas import FailureKind, FocusMode

ARABIC_SCRIPT = re.compile("[\u0600-\u06FF]")

DEFAULT_SYSTEM_PROMPT = "أنت مساعد ذكي ومفيد."


def detect_language(text: str) -> str:
    """Return 'ar' when the text contains Arabic script, otherwise 'en'."""
    return "ar" if ARABIC_SCRIPT.search(text or "") else "en"


# ============== System Prompts ==============

VOICE_PROMPT_AR = """أنت مساعد ذكي محترف ومحاور ممتاز. المستخدم يتحدث معك صوتياً.

**قواعد المحادثة الصوتية:**
- عند التحية، رد بتحية مختصرة واسأل كيف يمكنك المساعدة
- أجب بشكل طبيعي ومباشر دون بحث للتحيات البسيطة
- استخدم لغة محادثة بسيطة بدون تنسيق أو قوائم
- كن مختصراً ومباشراً

**تذكر: المستخدم يستمع لإجابتك، اجعلها سهلة الاستماع.**"""

VOICE_PROMPT_EN = """You are a professional AI assistant and an excellent conversationalist. The user is speaking to you by voice.

**Voice conversation rules:**
- When greeted, reply briefly and ask how you can help
- Answer naturally and directly without searching for simple greetings
- Use plain conversational language without formatting or lists
- Keep answers short and direct

**Remember: the user is listening, keep responses easy to follow by ear.**"""

BASE_PROMPT_AR = """أنت مساعد ذكي متقدم ومحترف. تجيب على جميع الأسئلة بذكاء ودقة في أي مجال.

أنت خبير في:
- البرمجة وتطوير البرمجيات بجميع اللغات
- العلوم والرياضيات
- اللغات والأدب والتاريخ والجغرافيا
- الأعمال والاقتصاد والتسويق

**قواعد الإجابة:**
- أجب بشكل واضح ومنظم مع أمثلة عند الحاجة
- استخدم التنسيق المناسب (عناوين، قوائم، أكواد)
- كن دقيقاً ومفيداً في جميع إجاباتك"""

BASE_PROMPT_EN = """You are an advanced, professional AI assistant. You answer questions in any field intelligently and accurately.

You are an expert in:
- Programming and software development in all languages
- Science and mathematics
- Languages, literature, history and geography
- Business, economics and marketing

**Response rules:**
- Answer clearly and in an organized way, with examples when useful
- Use appropriate formatting (headings, lists, code blocks)
- Be accurate and helpful"""

DEEP_THINKING_AR = """**التفكير العميق مفعّل:**
- حلل السؤال بعمق قبل الإجابة
- فكر في جميع الجوانب والاحتمالات
- قدم إجابة شاملة ومدروسة
- اشرح المنطق وراء استنتاجاتك"""

DEEP_THINKING_EN = """**Deep thinking enabled:**
- Analyze the question thoroughly before answering
- Consider every angle and possibility
- Give a comprehensive, well-reasoned answer
- Explain the reasoning behind your conclusions"""

FOCUS_HINTS: Dict[FocusMode, Dict[str, str]] = {
    FocusMode.ACADEMIC: {
        "ar": "**وضع التركيز الأكاديمي:** استخدم أسلوباً علمياً رصيناً واذكر المفاهيم والمراجع عند الإمكان.",
        "en": "**Academic focus:** use a rigorous scholarly tone and cite concepts and references where possible.",
    },
    FocusMode.WRITING: {
        "ar": "**وضع الكتابة:** ركز على جودة الصياغة والأسلوب وتنظيم الأفكار.",
        "en": "**Writing focus:** prioritize phrasing, style and the flow of ideas.",
    },
    FocusMode.CODE: {
        "ar": "**وضع البرمجة:** قدم أكواداً كاملة قابلة للتشغيل داخل كتل أكواد مع شرح موجز.",
        "en": "**Code focus:** give complete, runnable code in fenced blocks with a brief explanation.",
    },
}


def get_system_prompt(
    is_voice_mode: bool,
    deep_thinking: bool,
    language: str,
    focus_mode: FocusMode = FocusMode.GENERAL,
) -> str:
    """Build the system prompt for a chat turn."""
    if is_voice_mode:
        return VOICE_PROMPT_AR if language == "ar" else VOICE_PROMPT_EN

    parts = [BASE_PROMPT_AR if language == "ar" else BASE_PROMPT_EN]
    hint = FOCUS_HINTS.get(focus_mode)
    if hint:
        parts.append(hint["ar" if language == "ar" else "en"])
    if deep_thinking:
        parts.append(DEEP_THINKING_AR if language == "ar" else DEEP_THINKING_EN)
    return "\n\n".join(parts)


def get_temperature(is_voice_mode: bool, deep_thinking: bool) -> float:
    if is_voice_mode:
        return 0.6
    if deep_thinking:
        return 0.9
    return 0.7


# ============== Deep Search Prompts ==============

def build_search_prompt(query: str, context: str, language: str, is_voice_mode: bool = False) -> str:
    """Wrap the user's question with gathered search context."""
    if is_voice_mode:
        if language == "ar":
            return f"أجب باللغة العربية فقط بشكل مختصر ومحادثاتي (3-4 جمل). السؤال: {query}"
        return f"Answer in English only, briefly and conversationally (3-4 sentences). Question: {query}"

    if language == "ar":
        if context:
            return (
                f"بناءً على نتائج البحث التالية، قدم إجابة شاملة ودقيقة:\n\n{context}\n\n"
                f"السؤال: {query}\n\n"
                "ملاحظة: قدم إجابة مفصلة باللغة العربية مع الإشارة للمصادر عند الحاجة."
            )
        return f"{query}\n\nملاحظة: قدم إجابة مفيدة باللغة العربية."

    if context:
        return (
            "Based on the following search results, provide a comprehensive and accurate answer:\n\n"
            f"{context}\n\nQuestion: {query}\n\n"
            "Note: Provide a detailed answer and reference sources when appropriate."
        )
    return f"{query}\n\nNote: Provide a helpful answer."


# ============== Localized Messages ==============

CONFIG_MISSING_MESSAGE = (
    "⚠️ لم يتم تكوين مفتاح API. الرجاء إضافة OPENROUTER_API_KEY في ملف .env\n\n"
    "للحصول على مفتاح مجاني: https://openrouter.ai/keys"
)

INVALID_API_KEY_MESSAGE = "⚠️ مفتاح API غير صحيح. يرجى التحقق من OPENROUTER_API_KEY"

EXHAUSTED_MESSAGES: Dict[str, Dict[str, str]] = {
    FailureKind.RATE_LIMITED.value: {
        "ar": "⏱️ تم تجاوز الحد المسموح من الطلبات لهذا النموذج. يرجى الانتظار قليلاً ثم المحاولة مرة أخرى.",
        "en": "⏱️ Rate limit exceeded for this model. Please wait a moment and try again.",
    },
    FailureKind.SERVICE_BUSY.value: {
        "ar": "⏳ النموذج المختار مشغول حالياً. يرجى المحاولة بعد قليل.",
        "en": "⏳ The selected model is busy right now. Please try again shortly.",
    },
    "generic": {
        "ar": "عذراً، لم نتمكن من الاتصال بالنموذج حالياً. يرجى المحاولة بعد قليل.",
        "en": "Sorry, we couldn't connect to the model right now. Please try again shortly.",
    },
}

GENERIC_ERROR_MESSAGES = {
    "ar": "عذراً، حدث خطأ في معالجة طلبك. يرجى المحاولة مرة أخرى.",
    "en": "Sorry, an error occurred while processing your request. Please try again.",
}

SEARCH_ERROR_MESSAGES = {
    "ar": "عذراً، حدث خطأ أثناء البحث. يرجى المحاولة مرة أخرى.",
    "en": "Sorry, an error occurred during search. Please try again.",
}

EMPTY_QUERY_MESSAGES = {
    "ar": "عذراً، لم أتمكن من فهم سؤالك. يرجى إعادة المحاولة.",
    "en": "Sorry, I couldn't understand your question. Please try again.",
}

RATE_LIMIT_MESSAGE = "لقد تجاوزت الحد المسموح من الطلبات. يرجى المحاولة لاحقاً."


def exhausted_message(failure_kind, language: str) -> str:
    """Message shown when every candidate model failed."""
    key = failure_kind.value if failure_kind in (FailureKind.RATE_LIMITED, FailureKind.SERVICE_BUSY) else "generic"
    return EXHAUSTED_MESSAGES[key]["ar" if language == "ar" else "en"]


def localized(messages: Dict[str, str], language: str) -> str:
    return messages["ar" if language == "ar" else "en"]
