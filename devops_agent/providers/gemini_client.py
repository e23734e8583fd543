"""Gemini Provider 适配器。

本模块负责：

1. 把完整的会话历史与工具声明转换为 generateContent 请求体。
2. 调用 HTTP 接口并对失败分类（网络 / API 状态码 / 响应结构）。
3. 将响应 JSON 解析为统一的 GenerateResult，parts 顺序与内容原样保留。

接口约定：
- URL: {endpoint}/models/{model}:generateContent
- 认证: API key 作为 query 参数 key 传递
- temperature 固定为 0，其他采样参数仅在显式配置时发送
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx

from devops_agent.domain.conversation import message_to_payload
from devops_agent.domain.exceptions import ApiError, ConfigurationError, ProtocolError, RateLimitError, TransportError
from devops_agent.domain.models import Candidate, FunctionCall, FunctionResponse, GenerateResult, Message, Part
from devops_agent.infrastructure.logging.logger import logger
from devops_agent.providers.registry import GEMINI_CONFIG
from devops_agent.tools.definitions import ToolDeclaration

_KNOWN_PART_KEYS = {"text", "functionCall", "functionResponse"}


class GeminiClient:
    """Gemini 客户端实现。

    - name: Provider 名称（供日志使用）。
    - generate: 对外统一调用入口，返回 GenerateResult。
    """

    name = "gemini"

    def __init__(self, settings):
        # Settings 里包含 api key、模型、endpoint、超时与可选采样参数
        api_key = getattr(settings, "gemini_api_key", None)
        if not api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="APIKey is required for provider gemini")
        self._api_key = api_key
        self._model = getattr(settings, "model", None) or GEMINI_CONFIG.default_model
        self._endpoint = (getattr(settings, "endpoint", None) or GEMINI_CONFIG.base_url).rstrip("/")
        self._timeout = getattr(settings, "http_timeout", None)
        self._max_output_tokens = getattr(settings, "max_output_tokens", None)
        self._top_k = getattr(settings, "top_k", None)
        self._top_p = getattr(settings, "top_p", None)

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def generate(self, history: Sequence[Message], declarations: Sequence[ToolDeclaration]) -> GenerateResult:
        """执行一次非流式调用。

        步骤：
        1. 构造请求 payload。
        2. 发送请求并把网络错误 / 非 2xx 状态码包装成统一异常。
        3. 解析响应 JSON，结构不符时抛出 ProtocolError。
        """

        payload = self.build_payload(history, declarations)
        url = f"{self._endpoint}/models/{self._model}:generateContent"
        logger.debug("Sending to Gemini", extra={"extra": {"payload": payload}})
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(
                    url,
                    params={"key": self._api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接中断、读取响应失败等
            raise TransportError(code="TRANSPORT_ERROR", message=f"failed to send request: {e}") from e
        if resp.status_code == 429:
            raise RateLimitError(body=resp.text)
        if not 200 <= resp.status_code < 300:
            raise ApiError(status=resp.status_code, body=resp.text)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProtocolError(code="INVALID_RESPONSE", message=f"failed to decode response: {e}") from e
        logger.debug("Received from Gemini", extra={"extra": {"response": data}})
        return self.parse_response(data)

    def build_payload(self, history: Sequence[Message], declarations: Sequence[ToolDeclaration]) -> Dict[str, Any]:
        """将会话历史与工具声明转成 generateContent 请求 JSON。"""

        payload: Dict[str, Any] = {"contents": [message_to_payload(m) for m in history]}
        if declarations:
            payload["tools"] = [{"functionDeclarations": [self._serialize_tool(d) for d in declarations]}]
        payload["safetySettings"] = [s.to_payload() for s in GEMINI_CONFIG.safety_settings]
        payload["generationConfig"] = self._generation_config()
        return payload

    def _generation_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {"temperature": 0}
        if self._max_output_tokens:
            config["maxOutputTokens"] = self._max_output_tokens
        if self._top_k:
            config["topK"] = self._top_k
        if self._top_p:
            config["topP"] = self._top_p
        return config

    @staticmethod
    def _serialize_tool(declaration: ToolDeclaration) -> Dict[str, Any]:
        """把内部的 ToolDeclaration 转成 Gemini functionDeclaration。"""

        properties = {
            name: {"type": param.type, "description": param.description}
            for name, param in declaration.params.items()
        }
        parameters: Dict[str, Any] = {"type": "object", "properties": properties}
        required = declaration.required
        if required:
            parameters["required"] = required
        return {
            "name": declaration.name,
            "description": declaration.description,
            "parameters": parameters,
        }

    def parse_response(self, data: Any) -> GenerateResult:
        """将原始响应 JSON 解析为统一的 GenerateResult。"""

        if not isinstance(data, dict):
            raise ProtocolError(code="INVALID_RESPONSE", message="response body is not a JSON object")
        raw_candidates = data.get("candidates") or []
        if not isinstance(raw_candidates, list):
            raise ProtocolError(code="INVALID_RESPONSE", message="'candidates' is not a list")
        candidates: List[Candidate] = []
        for raw in raw_candidates:
            if not isinstance(raw, dict):
                raise ProtocolError(code="INVALID_RESPONSE", message="candidate is not a JSON object")
            candidates.append(
                Candidate(
                    content=self._build_message(raw.get("content") or {}),
                    finish_reason=raw.get("finishReason"),
                )
            )
        return GenerateResult(candidates=candidates)

    def _build_message(self, content: Any) -> Message:
        if not isinstance(content, dict):
            raise ProtocolError(code="INVALID_RESPONSE", message="candidate content is not a JSON object")
        raw_parts = content.get("parts") or []
        if not isinstance(raw_parts, list):
            raise ProtocolError(code="INVALID_RESPONSE", message="content 'parts' is not a list")
        # 模型返回的 role 统一记为 model
        return Message(role="model", parts=tuple(self._build_part(p) for p in raw_parts))

    @staticmethod
    def _build_part(raw: Any) -> Part:
        """解析单个 part，未知字段保存在 extra 中，回传时原样带上。"""

        if not isinstance(raw, dict):
            raise ProtocolError(code="INVALID_RESPONSE", message="part is not a JSON object")
        text = raw.get("text")
        if text is not None and not isinstance(text, str):
            raise ProtocolError(code="INVALID_RESPONSE", message="part 'text' is not a string")
        return Part(
            text=text,
            function_call=_parse_function_call(raw.get("functionCall")),
            function_response=_parse_function_response(raw.get("functionResponse")),
            extra={k: v for k, v in raw.items() if k not in _KNOWN_PART_KEYS},
        )


def _parse_function_call(raw: Any) -> Optional[FunctionCall]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        raise ProtocolError(code="INVALID_RESPONSE", message=f"malformed functionCall: {json.dumps(raw, default=str)}")
    args = raw.get("args") or {}
    if not isinstance(args, dict):
        raise ProtocolError(code="INVALID_RESPONSE", message="functionCall 'args' is not an object")
    return FunctionCall(name=raw["name"], args=args)


def _parse_function_response(raw: Any) -> Optional[FunctionResponse]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
        raise ProtocolError(code="INVALID_RESPONSE", message=f"malformed functionResponse: {json.dumps(raw, default=str)}")
    result = raw.get("response") or {}
    if not isinstance(result, dict):
        raise ProtocolError(code="INVALID_RESPONSE", message="functionResponse 'response' is not an object")
    return FunctionResponse(name=raw["name"], result=result)
