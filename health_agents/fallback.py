"""
Fallback templates for Health Buddy.

Deterministic text used when neither the local nor the remote model could
answer. Keyword templates come first; otherwise an error-specific lead is
followed by general wellness guidance.
"""

from typing import Dict, List, Optional, Tuple

from .errors import LLMErrorKind, LLMProviderError
from .metrics import detect_language

EN_TEMPLATES: List[Tuple[str, str]] = [
    ("step",
     "I notice you're asking about steps. While I can't access my AI service right now, I can tell you "
     "that the recommended daily step goal is 8,000-10,000 steps. You can check your recent step data "
     "in the Health app."),
    ("heart",
     "You're asking about heart rate. A normal resting heart rate is typically 60-100 bpm for adults. "
     "For exercise, aim for 50-85% of your maximum heart rate (220 minus your age)."),
    ("sleep",
     "Regarding sleep, most adults need 7-9 hours per night. Good sleep hygiene includes consistent "
     "sleep schedules and limiting screens before bedtime."),
    ("weight",
     "For weight management, focus on balanced nutrition and regular physical activity. Small, "
     "consistent changes often lead to sustainable results."),
]

CN_TEMPLATES: List[Tuple[str, str]] = [
    ("步数", """🚶‍♀️ **关于步数的健康建议**

• 建议每天至少走8000-10000步
• 增加日常活动：选择楼梯而非电梯
• 定期短途散步有助于身心健康
• 循序渐进增加步数目标

💡 *小贴士：分次完成比一次性完成更容易坚持*"""),
    ("心率", """💓 **关于心率的健康知识**

• 正常成年人静息心率：60-100次/分钟
• 运动时心率会自然升高
• 规律运动有助于降低静息心率
• 异常心率变化请咨询医生

⚠️ *如有胸痛、气短等症状，请及时就医*"""),
    ("睡眠", """😴 **关于睡眠的健康建议**

• 成年人建议每天7-9小时睡眠
• 保持规律的作息时间
• 睡前避免使用电子设备
• 创造安静、黑暗的睡眠环境

🌙 *良好的睡眠是健康的基础*"""),
    ("运动", """🏃‍♀️ **关于运动的健康指导**

• 每周至少150分钟中等强度运动
• 结合有氧运动和力量训练
• 选择自己喜欢的运动方式
• 运动前做好热身准备

💪 *坚持运动，收获健康*"""),
    ("体重", """⚖️ **关于体重管理的建议**

• 注重均衡营养，控制总热量摄入
• 规律运动，结合有氧与力量训练
• 小而持续的改变更容易长期坚持
• 定期记录体重，关注长期趋势

💡 *健康的体重变化应循序渐进*"""),
]

GENERIC_WELLNESS_EN = """🌟 **Healthy living tips**

• 🚶 Stay physically active every day
• 🥗 Eat balanced, nutritious meals
• 😴 Aim for 7-9 hours of quality sleep
• 💧 Drink enough water
• 🧘 Look after stress and emotional health

⚠️ This is general guidance only and does not replace professional medical advice."""

GENERIC_WELLNESS_CN = """🌟 **健康生活建议**

感谢您关注健康！由于当前网络不可用或AI模型暂不可用，这里为您提供一般性健康建议：

• 🚶‍♀️ 保持规律的体育活动
• 🥗 维持均衡营养的饮食
• 😴 确保充足优质的睡眠
• 💧 保持适当的水分摄入
• 🧘‍♀️ 管理压力和情绪健康

⚠️ **重要提醒**：本建议仅供参考，不能替代专业医疗建议。如有健康疑虑，请咨询医疗专业人士。

🔄 网络恢复后，我们将为您提供更详细的个性化健康分析。"""

OFFLINE_LEAD = (
    "I'm currently offline, but I can still help! Could you check your health data in the app and let me "
    "know what specific information you'd like to discuss? I have some general health guidance available."
)

_LEADS: Dict[LLMErrorKind, str] = {
    LLMErrorKind.NETWORK_UNAVAILABLE: OFFLINE_LEAD,
    LLMErrorKind.RATE_LIMITED:
        "I'm experiencing high demand right now. Let me try to help based on what I know about your health data.",
    LLMErrorKind.API_KEY_MISSING:
        "I'm having trouble connecting to my AI service. Let me provide some basic health guidance.",
    LLMErrorKind.AUTHENTICATION_FAILED:
        "I'm having trouble connecting to my AI service. Let me provide some basic health guidance.",
    LLMErrorKind.REQUEST_TIMEOUT:
        "My response is taking longer than expected. Here's what I can tell you based on your local health data.",
    LLMErrorKind.SERVER_ERROR:
        "My AI service is temporarily unavailable. I can still help analyze your health data locally.",
}


def keyword_template(query: str) -> Optional[str]:
    """Return a canned answer when the query names a common topic."""
    if detect_language(query) == "zh":
        for keyword, template in CN_TEMPLATES:
            if keyword in query:
                return template
        return None

    lowered = query.lower()
    for keyword, template in EN_TEMPLATES:
        if keyword in lowered:
            return template
    return None


def local_analysis_lead(health_context: Dict[str, str]) -> str:
    if health_context:
        metrics = ", ".join(health_context.keys())
        return (
            f"Based on your recent health data ({metrics}), I can see you're tracking your wellness actively. "
            "While I can't provide my full AI analysis right now, I encourage you to keep monitoring these "
            "metrics. What specific aspect would you like to focus on?"
        )
    return (
        "I'm having trouble with my AI service, but I'm still here to help! Could you be more specific about "
        "what health information you're looking for? I can provide general guidance and help you interpret "
        "your health data."
    )


def error_lead(error: Optional[LLMProviderError], health_context: Optional[Dict[str, str]] = None) -> str:
    """Opening sentence explaining why the full answer is unavailable."""
    kind = error.kind if error is not None else LLMErrorKind.UNKNOWN
    lead = _LEADS.get(kind)
    if lead is None:
        # invalid response and unknown errors
        return local_analysis_lead(health_context or {})
    return lead


def fallback_text(
    query: str,
    error: Optional[LLMProviderError] = None,
    health_context: Optional[Dict[str, str]] = None,
) -> str:
    """
    Build the final fallback answer for a query.

    Args:
        query: The user's question
        error: The provider error that led here, if any
        health_context: Relevant health context for the local-analysis lead

    Returns:
        Non-empty response text
    """
    template = keyword_template(query)
    if template is not None:
        return template

    if detect_language(query) == "zh":
        if error is None:
            return GENERIC_WELLNESS_CN
        return f"{error.description('zh')}{error.recovery_guidance('zh')}\n\n{GENERIC_WELLNESS_CN}"
    return f"{error_lead(error, health_context)}\n\n{GENERIC_WELLNESS_EN}"
