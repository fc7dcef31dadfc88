from __future__ import annotations

from functools import lru_cache
from typing import Dict

from .schemas import DEFAULT_LANGUAGE

LANGUAGE_NAMES: Dict[str, str] = {
    "fa": "Persian (Farsi)",
    "en": "English",
    "ar": "Arabic",
    "tr": "Turkish",
    "zh": "Simplified Chinese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
}

MEDICAL_CONDITION_MESSAGES: Dict[str, str] = {
    "fa": "با توجه به شرایط پزشکی اعلام‌شده، لطفاً پیش از شروع هر برنامه غذایی یا ورزشی با پزشک یا متخصص تغذیه مشورت کنید.",
    "en": "Because you reported a medical condition, please consult a doctor or a registered dietitian before starting any diet or exercise plan.",
    "ar": "نظرًا لوجود حالة طبية، يرجى استشارة الطبيب أو أخصائي التغذية قبل البدء بأي نظام غذائي أو برنامج رياضي.",
    "tr": "Bildirdiğiniz sağlık durumu nedeniyle, herhangi bir diyet veya egzersiz programına başlamadan önce lütfen bir doktora veya diyetisyene danışın.",
    "zh": "由于您报告了健康状况，请在开始任何饮食或运动计划之前咨询医生或注册营养师。",
    "es": "Como indicaste una condición médica, consulta a un médico o a un dietista antes de comenzar cualquier plan de dieta o ejercicio.",
    "fr": "Comme vous avez signalé un problème de santé, veuillez consulter un médecin ou un diététicien avant de commencer tout programme alimentaire ou sportif.",
    "de": "Da Sie eine Vorerkrankung angegeben haben, sprechen Sie bitte vor Beginn eines Ernährungs- oder Trainingsplans mit einem Arzt oder einer Ernährungsfachkraft.",
}

GUIDANCE_PROMPT_TEMPLATE = """
You are a concise nutrition and training coach.
Return only the critical constraints the plan must follow.
Respond strictly as JSON matching the guidance schema. No prose outside JSON.
- The JSON must be syntactically complete: close every string, array, and object; no trailing commas; no ellipses.
- Keep guidance simple and practical: everyday foods, no supplements or complex recipes.
- diet_rules: 3-5 short {language} bullets with calorie/macro boundaries implied by the provided computedNumbers.
- exercise_rules: 3-5 short {language} bullets noting split, intensity guidance, and recovery.
Each bullet <= 80 chars. Use the provided user payload; never re-compute numbers.
""".strip()

PLAN_PROMPT_TEMPLATE = """
You are writing the weekly plan that satisfies the given guidance rules.
Respond strictly as JSON per the plan schema. No extra text.
Use English for JSON keys; {language} for user-facing text ("goal", "what", "why").
Use the provided computedNumbers; do not recompute calories/macros.
Keep the plan basic and clear: simple meals (one protein + one carb + veg), common units (g, cup), no recipes, no brand names, no supplements. Reuse items across days if helpful. Exactly 3 meals per day.
Constraints:
- Diet object must contain keys sat,sun,mon,tue,wed,thu,fri. Each is an array of exactly 3 items with keys when, what, why.
- Exercise is an array (3-4) of sessions; day must be one of sat|sun|mon|tue|wed|thu|fri; include when, goal, what, duration_minutes, intensity_or_rest. Prefer bodyweight/dumbbell if practicePlace != "gym".
- In diet items keep each "what" <= 120 chars and "why" <= 80 chars.
Example shape (values are placeholders):
{{
  "diet": {{
    "sat": [{{"when":"breakfast","what":"...","why":"..."}}, {{"when":"lunch","what":"...","why":"..."}}, {{"when":"dinner","what":"...","why":"..."}}],
    "sun": [...],
    "mon": [...],
    "tue": [...],
    "wed": [...],
    "thu": [...],
    "fri": [...]
  }},
  "exercise": [
    {{"day":"sat","when":"morning","goal":"...","what":"...","duration_minutes":45,"intensity_or_rest":"moderate"}},
    {{"day":"mon","when":"evening","goal":"...","what":"...","duration_minutes":40,"intensity_or_rest":"high"}}
  ]
}}
""".strip()


def _language_name(language: str) -> str:
    return LANGUAGE_NAMES.get(language, LANGUAGE_NAMES[DEFAULT_LANGUAGE])


@lru_cache
def guidance_prompt(language: str = DEFAULT_LANGUAGE) -> str:
    return GUIDANCE_PROMPT_TEMPLATE.format(language=_language_name(language))


@lru_cache
def plan_prompt(language: str = DEFAULT_LANGUAGE) -> str:
    return PLAN_PROMPT_TEMPLATE.format(language=_language_name(language))


def medical_condition_message(language: str = DEFAULT_LANGUAGE) -> str:
    return MEDICAL_CONDITION_MESSAGES.get(language, MEDICAL_CONDITION_MESSAGES[DEFAULT_LANGUAGE])
