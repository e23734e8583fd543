"""Provider 配置。

集中维护各 Provider 的默认模型、默认 endpoint 与固定请求参数，
便于后续升级模型或接入新的 Provider。"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping


@dataclass(frozen=True)
class SafetySetting:
    category: str
    threshold: str

    def to_payload(self) -> Dict[str, str]:
        return {"category": self.category, "threshold": self.threshold}


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    default_model: str
    safety_settings: List[SafetySetting] = field(default_factory=list)


# 四个类别，统一使用保守阈值
GEMINI_SAFETY_SETTINGS = [
    SafetySetting("HARM_CATEGORY_HARASSMENT", "BLOCK_MEDIUM_AND_ABOVE"),
    SafetySetting("HARM_CATEGORY_HATE_SPEECH", "BLOCK_MEDIUM_AND_ABOVE"),
    SafetySetting("HARM_CATEGORY_SEXUALLY_EXPLICIT", "BLOCK_MEDIUM_AND_ABOVE"),
    SafetySetting("HARM_CATEGORY_DANGEROUS_CONTENT", "BLOCK_MEDIUM_AND_ABOVE"),
]

GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    default_model="gemini-1.5-pro",
    safety_settings=GEMINI_SAFETY_SETTINGS,
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "gemini": GEMINI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
