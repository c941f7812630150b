"""
本文件用于封装与外部生成式 AI 服务的交互：主/备密钥切换、失败计数与有限重试。
主要类/函数:
- `AIRoute`: 单个已配置凭据的调用通道（primary/fallback）
- `GenerationConfig`: 生成参数
- `ModelHandle`: 绑定到当前通道的模型句柄
- `AIService`: AI 客户端封装（统一的 `generate_content` 入口）
- `classify_provider_error`: 将 SDK 异常归类为 `ProviderErrorKind`
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)

from app.core.config import Settings
from app.core.exceptions import AIGenerationError, NoClientAvailableError, ProviderError, ProviderErrorKind
from app.core.logger import setup_logger

logger = setup_logger("AIService")


@dataclass
class AIRoute:
    name: str
    model: str
    client: Any


@dataclass
class GenerationConfig:
    temperature: float = 0.2
    top_p: float = 0.9
    max_output_tokens: int = 2000


@dataclass
class GenerationResult:
    text: str
    using_fallback: bool
    key_used: str
    model: str


def classify_provider_error(exc: BaseException) -> ProviderErrorKind:
    """
    输入:
    - `exc`: AI 调用抛出的异常

    输出:
    - 对应的 `ProviderErrorKind`

    作用:
    - 优先依据 openai SDK 的异常类型与状态码归类；非 SDK 异常才回退到错误信息关键字
    """

    if isinstance(exc, RateLimitError):
        if getattr(exc, "code", None) == "insufficient_quota" or "quota" in str(exc).lower():
            return ProviderErrorKind.QUOTA
        return ProviderErrorKind.RATE_LIMIT
    if isinstance(exc, NotFoundError):
        return ProviderErrorKind.MODEL_NOT_FOUND
    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return ProviderErrorKind.AUTH
    if isinstance(exc, (APIConnectionError, asyncio.TimeoutError)):
        return ProviderErrorKind.TRANSIENT
    if isinstance(exc, APIStatusError):
        if exc.status_code == 429:
            return ProviderErrorKind.RATE_LIMIT
        if exc.status_code == 404:
            return ProviderErrorKind.MODEL_NOT_FOUND
        if exc.status_code >= 500:
            return ProviderErrorKind.TRANSIENT
        return ProviderErrorKind.OTHER

    message = str(exc).lower()
    if "quota" in message:
        return ProviderErrorKind.QUOTA
    if "429" in message:
        return ProviderErrorKind.RATE_LIMIT
    if "404" in message:
        return ProviderErrorKind.MODEL_NOT_FOUND
    return ProviderErrorKind.OTHER


class ModelHandle:
    def __init__(self, service: "AIService", route: AIRoute, config: GenerationConfig) -> None:
        self._service = service
        self.route = route
        self.config = config

    @property
    def model(self) -> str:
        return self.route.model

    async def generate_content(self, prompt: str) -> str:
        # 经由 AIService 调用，失败计数与主备切换照常生效
        result = await self._service.generate_content(prompt, self.config)
        return result.text


class AIService:
    """
    输入:
    - `primary` / `fallback`: 主/备调用通道（任一可缺省）
    - `max_primary_failures`: 连续失败多少次后尝试切换到备用通道
    - `max_attempts`: 单次 `generate_content` 的最大尝试次数

    输出:
    - 生成文本与调用时的通道信息

    作用:
    - 统一 AI 调用入口；主通道连续失败达到阈值且备用通道探活成功时切换到备用通道。
      切换是单向的，只有显式调用 `reset_to_primary()` 才会回到主通道。
    """

    def __init__(
        self,
        primary: Optional[AIRoute] = None,
        fallback: Optional[AIRoute] = None,
        max_primary_failures: int = 3,
        max_attempts: int = 2,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.max_primary_failures = max_primary_failures
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

        self.using_fallback = primary is None and fallback is not None
        self.primary_failures = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIService":
        primary: Optional[AIRoute] = None
        fallback: Optional[AIRoute] = None

        main_key = (settings.MAIN_AI_API_KEY or "").strip()
        main_model = (settings.MAIN_AI_MODEL or "").strip()
        main_base_url = (settings.MAIN_AI_BASE_URL or "").strip() or None
        if main_key and main_model:
            primary = AIRoute(
                name="primary",
                model=main_model,
                client=AsyncOpenAI(api_key=main_key, base_url=main_base_url, max_retries=0),
            )

        backup_key = (settings.BACKUP_AI_API_KEY or "").strip()
        backup_model = (settings.BACKUP_AI_MODEL or "").strip() or main_model
        backup_base_url = (settings.BACKUP_AI_BASE_URL or "").strip() or main_base_url
        if backup_key and backup_model:
            fallback = AIRoute(
                name="fallback",
                model=backup_model,
                client=AsyncOpenAI(api_key=backup_key, base_url=backup_base_url, max_retries=0),
            )

        if primary is None and fallback is None:
            logger.warning("⚠️ 未配置任何 AI 密钥，AI 报表功能不可用")
        elif fallback is None:
            logger.info("🔑 AI 主通道已配置（未配置备用密钥，故障时无法切换）")
        elif primary is None:
            logger.warning("⚠️ 仅配置了备用 AI 密钥，将直接使用备用通道")
        else:
            logger.info("🔑 AI 主/备通道均已配置")

        return cls(
            primary=primary,
            fallback=fallback,
            max_primary_failures=settings.AI_MAX_PRIMARY_FAILURES,
            max_attempts=settings.AI_MAX_ATTEMPTS,
            retry_delay=settings.AI_RETRY_DELAY_SECONDS,
        )

    def _active_route(self) -> AIRoute:
        if self.using_fallback and self.fallback is not None:
            return self.fallback
        if self.primary is not None:
            return self.primary
        if self.fallback is not None:
            return self.fallback
        raise NoClientAvailableError("AI 客户端不可用：未配置主/备 API 密钥")

    def get_generative_model(self, config: Optional[GenerationConfig] = None) -> ModelHandle:
        return ModelHandle(self, self._active_route(), config or GenerationConfig())

    async def _complete(self, route: AIRoute, prompt: str, config: GenerationConfig) -> str:
        try:
            response = await route.client.chat.completions.create(
                model=route.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=config.temperature,
                top_p=config.top_p,
                max_tokens=config.max_output_tokens,
            )
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}", classify_provider_error(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError(f"AI 返回内容为空 ({route.model})")
        return content

    async def _probe(self, route: AIRoute) -> bool:
        try:
            await route.client.chat.completions.create(
                model=route.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=1,
            )
            return True
        except Exception as e:
            logger.warning(f"⚠️ 备用通道探活失败 ({route.model}): {e}")
            return False

    async def _maybe_switch_to_fallback(self) -> bool:
        if self.using_fallback or self.fallback is None:
            return False
        if self.primary_failures < self.max_primary_failures:
            return False

        logger.warning(f"🔄 主通道连续失败 {self.primary_failures} 次，探测备用通道...")
        if not await self._probe(self.fallback):
            return False

        self.using_fallback = True
        self.primary_failures = 0
        logger.info(f"✅ 已切换到备用通道 ({self.fallback.model})")
        return True

    async def generate_content(self, prompt: str, config: Optional[GenerationConfig] = None) -> GenerationResult:
        """
        输入:
        - `prompt`: 提示词
        - `config`: 生成参数（可选）

        输出:
        - `GenerationResult`（文本、是否使用备用通道、使用的通道名与模型）

        作用:
        - 在当前通道上最多尝试 `max_attempts` 次；达到失败阈值时探活并切换备用通道，
          切换成功后用备用通道重试一次。全部失败时抛出带状态快照的 `AIGenerationError`
        """

        config = config or GenerationConfig()
        last_error: Optional[ProviderError] = None

        for attempt in range(1, self.max_attempts + 1):
            route = self._active_route()
            try:
                text = await self._complete(route, prompt, config)
                if route is self.primary:
                    self.primary_failures = 0
                return GenerationResult(text=text, using_fallback=self.using_fallback, key_used=route.name, model=route.model)
            except ProviderError as e:
                last_error = e
                if route is self.primary:
                    self.primary_failures += 1
                logger.warning(f"⚠️ AI 调用失败 ({route.name}, 第 {attempt}/{self.max_attempts} 次): {e.message}")

            if await self._maybe_switch_to_fallback():
                try:
                    text = await self._complete(self.fallback, prompt, config)
                    return GenerationResult(
                        text=text, using_fallback=True, key_used=self.fallback.name, model=self.fallback.model
                    )
                except ProviderError as e:
                    last_error = e
                    logger.error(f"❌ 备用通道调用失败: {e.message}")
                    break

            if attempt < self.max_attempts and self.retry_delay > 0:
                await self._sleep(self.retry_delay)

        status = self.get_status()
        logger.error(f"❌ AI 生成失败，状态: {status}")
        raise AIGenerationError(
            f"AI 生成失败（{status['current_key']} 通道）: {last_error.message if last_error else '未知错误'}",
            kind=last_error.kind if last_error else ProviderErrorKind.OTHER,
            status=status,
        )

    def get_status(self) -> Dict[str, Any]:
        if self.using_fallback and self.fallback is not None:
            current_key = "fallback"
        elif self.primary is not None:
            current_key = "primary"
        elif self.fallback is not None:
            current_key = "fallback"
        else:
            current_key = "none"

        return {
            "using_fallback": self.using_fallback,
            "primary_failures": self.primary_failures,
            "primary_available": self.primary is not None,
            "fallback_available": self.fallback is not None,
            "current_key": current_key,
        }

    def reset_to_primary(self) -> None:
        if self.primary is None:
            logger.warning("⚠️ 未配置主通道，无法切回")
            return
        if self.using_fallback:
            logger.info("🔄 已切回 AI 主通道")
        self.using_fallback = False
        self.primary_failures = 0

    async def aclose(self) -> None:
        for route in (self.primary, self.fallback):
            if route is None:
                continue
            close = getattr(route.client, "close", None)
            if close is not None:
                await close()
