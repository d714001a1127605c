"""
Local Text Generation for Health Buddy

On-device (or on-LAN) generation used for private or offline questions.
The inference engine itself is external; OllamaHealthModel talks to an
Ollama server through litellm.
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional

from .errors import LocalModelError
from .health_values import HealthValue, merge_blood_pressure, ordered_items

logger = logging.getLogger(__name__)

RESPONSE_MARKER = "请提供分析和建议："

NO_DATA_TEXT = "📱 当前无可用健康数据，建议开启HealthKit权限获取更准确的分析。"

SYSTEM_PROMPT = """你是一个专业的健康数据分析助手，专门分析用户的健康数据。你的任务是基于用户的健康数据提供准确、有用的洞察和建议。

你的分析能力：
1. 📊 分析健康数据趋势和模式变化
2. 💡 提供基于数据的客观洞察
3. 🎯 给出实用的健康改善建议
4. ⚠️ 识别需要关注的健康指标异常

回复要求：
- 使用清晰易懂的中文回复
- 结构化组织信息（数据分析→洞察→建议）
- 保持专业但友好的语调
- 提供具体可行的健康建议
- 使用适当的emoji提升可读性"""

SAFETY_GUIDELINES = """🏥 医疗安全声明：
• 本分析基于您的健康数据，仅供健康管理参考
• 不能替代专业医疗诊断或治疗建议
• 如有严重健康问题或急症，请立即就医
• 不提供药物推荐或疾病诊断结论
• 建议定期咨询医疗专业人士"""

PROMPT_DISPLAY_NAMES = {
    "steps": "每日步数",
    "heartRateAverage": "心率",
    "restingHeartRate": "静息心率",
    "sleepDurationHours": "睡眠时长",
    "activeEnergy": "活动能量消耗",
    "heartRateVariability": "心率变异性",
    "heartRateRecovery": "心率恢复",
    "vo2Max": "最大摄氧量",
    "walkingHeartRateAverage": "步行平均心率",
    "bloodPressure": "血压",
    "bodyMass": "体重",
    "respiratoryRate": "呼吸频率",
    "oxygenSaturation": "血氧饱和度",
    "bodyTemperature": "体温",
}

PROMPT_EMOJIS = {
    "steps": "🚶",
    "heartRateAverage": "💓",
    "restingHeartRate": "😌💓",
    "sleepDurationHours": "😴",
    "activeEnergy": "🔥",
    "heartRateVariability": "📈",
    "heartRateRecovery": "📉",
    "vo2Max": "🫁",
    "walkingHeartRateAverage": "🚶💓",
    "bloodPressure": "🩸",
    "bodyMass": "⚖️",
    "respiratoryRate": "🫁",
    "oxygenSaturation": "💨",
    "bodyTemperature": "🌡️",
}


class ModelStatus(Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


def _readable(key: str) -> str:
    """camelCase -> 'Camel Case' for keys without a display name."""
    out = ""
    for ch in key:
        out += f" {ch}" if ch.isupper() else ch
    return out.strip().title()


class HealthPromptBuilder:
    """Builds the full generation prompt for a health question."""

    @staticmethod
    def format_health_data(health_data: Dict[str, HealthValue]) -> str:
        if not health_data:
            return NO_DATA_TEXT
        lines = []
        for key, value in ordered_items(merge_blood_pressure(health_data)):
            name = PROMPT_DISPLAY_NAMES.get(key, _readable(key))
            emoji = PROMPT_EMOJIS.get(key, "📊")
            lines.append(f"{emoji} {name}: {value.format('zh')}")
        return "\n".join(lines)

    @classmethod
    def build_prompt(cls, query: str, health_data: Optional[Dict[str, HealthValue]] = None) -> str:
        prompt = (
            f"{SYSTEM_PROMPT}\n\n"
            f"{SAFETY_GUIDELINES}\n\n"
            f"用户健康数据：\n{cls.format_health_data(health_data or {})}\n\n"
            f"用户查询：{query}\n\n"
            f"{RESPONSE_MARKER}"
        )
        logger.debug(f"Generated prompt length: {len(prompt)} characters")
        return prompt


def clean_generated_text(text: str) -> str:
    """Drop any echoed prompt before the response marker and trim."""
    if RESPONSE_MARKER in text:
        text = text.split(RESPONSE_MARKER, 1)[1]
    return text.strip()


class LocalTextGenerator(ABC):
    """Abstract local generator with an explicit load lifecycle."""

    def __init__(self):
        self._status = ModelStatus.NOT_LOADED
        self._lock = threading.Lock()

    @property
    def status(self) -> ModelStatus:
        return self._status

    @property
    def is_available(self) -> bool:
        return self._status in (ModelStatus.LOADED, ModelStatus.LOADING)

    def load_if_needed(self) -> None:
        """
        Load the model unless it is already loaded.

        Raises:
            LocalModelError: If loading fails
        """
        with self._lock:
            if self._status is ModelStatus.LOADED:
                return
            self._status = ModelStatus.LOADING
            try:
                self._load()
            except LocalModelError:
                self._status = ModelStatus.ERROR
                raise
            except Exception as e:
                self._status = ModelStatus.ERROR
                raise LocalModelError(f"Local model failed to load: {e}") from e
            self._status = ModelStatus.LOADED
        logger.info(f"[LOCAL] {type(self).__name__} loaded")

    def unload(self) -> None:
        with self._lock:
            self._unload()
            self._status = ModelStatus.NOT_LOADED

    def generate(self, prompt: str, health_context: Optional[Dict[str, HealthValue]] = None) -> str:
        """
        Answer a health question locally.

        Args:
            prompt: The user's question
            health_context: Recent health values to ground the answer

        Returns:
            Response text

        Raises:
            LocalModelError: If the model cannot load or produce text
        """
        self.load_if_needed()
        full_prompt = HealthPromptBuilder.build_prompt(prompt, health_context)
        try:
            raw = self._generate(full_prompt)
        except LocalModelError:
            raise
        except Exception as e:
            raise LocalModelError(f"Local model failed to generate: {e}") from e
        text = clean_generated_text(raw)
        if not text:
            raise LocalModelError("Local model returned an empty response")
        return text

    @abstractmethod
    def _load(self) -> None:
        pass

    def _unload(self) -> None:
        pass

    @abstractmethod
    def _generate(self, full_prompt: str) -> str:
        pass


class OllamaHealthModel(LocalTextGenerator):
    """Local generator served by Ollama, called through litellm."""

    def __init__(
        self,
        model_name: str = "llama3.2",
        api_base: Optional[str] = None,
        timeout: float = 60.0,
        temperature: float = 0.7,
        max_tokens: int = 512,
    ):
        super().__init__()
        self.model = model_name if model_name.startswith("ollama/") else f"ollama/{model_name}"
        self.api_base = api_base
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _load(self) -> None:
        # Ollama loads models on first request; nothing to warm up here
        if not self.model.split("/", 1)[1]:
            raise LocalModelError("No local model name configured")

    def _generate(self, full_prompt: str) -> str:
        from litellm import completion

        completion_kwargs = {
            "model": self.model,
            "messages": [{"role": "user", "content": full_prompt}],
            "timeout": self.timeout,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.api_base:
            completion_kwargs["api_base"] = self.api_base

        try:
            response = completion(**completion_kwargs)
            return response.choices[0].message.content or ""
        except (IndexError, AttributeError) as e:
            raise LocalModelError(f"Unexpected local model response: {e}")
        except Exception as e:
            logger.warning(f"[LOCAL] Generation failed: {e}")
            raise LocalModelError(f"Local generation failed: {e}")
