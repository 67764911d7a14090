# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The provider router: a single entry point over all chat backends.

Per request it resolves the backend, bounds the history, prepares the project
context and delegates the stream to the backend adapter. Cancellation and
model listing fan out to every adapter.
"""

import asyncio
import logging

from typing import Sequence

from .history import optimize_history
from .prompts import license_downgrade_notice, project_pointer
from .providers import (
    ChatProvider,
    GeminiProvider,
    GrokProvider,
    GroqProvider,
    MoonshotProvider,
    OllamaProvider,
    StreamHandle,
)
from .providers.base_provider import ChunkCallback
from .providers.ollama import ProgressCallback
from ..config import settings
from ..context import SmartContext
from ..errors import ConfigurationError, ProviderError
from ..tools import toolkits
from ..types.common import ChunkType, ContextMode, ProviderId
from ..types.llm_types import (
    ChatChunk,
    ChatResult,
    ContinuationState,
    ModelDescriptor,
    ProviderDescriptor,
    ProviderOptions,
    permitted_context_mode,
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Order in which merged model lists are reported
PROVIDER_ORDER = [
    ProviderId.GEMINI,
    ProviderId.GROK,
    ProviderId.GROQ,
    ProviderId.MOONSHOT,
    ProviderId.OLLAMA,
]


def default_providers() -> dict[ProviderId, ChatProvider]:
    return {
        ProviderId.GEMINI: GeminiProvider(),
        ProviderId.GROQ: GroqProvider(),
        ProviderId.GROK: GrokProvider(),
        ProviderId.MOONSHOT: MoonshotProvider(),
        ProviderId.OLLAMA: OllamaProvider(),
    }


class ProviderRouter:
    """Routes chat requests to backend adapters.

    One router serves one session; it holds no conversation state, only the
    delivery handles of the calls currently in flight.
    """

    def __init__(
        self,
        providers: dict[ProviderId, ChatProvider] | None = None,
        default_provider: ProviderId | str | None = None,
        tools: Sequence[type] | None = None,
    ):
        self.providers = providers if providers is not None else default_providers()
        self.default_provider = ProviderId(default_provider or settings.DEFAULT_PROVIDER)
        if self.default_provider not in self.providers:
            raise ConfigurationError(
                f"Default provider {self.default_provider.value} has no adapter"
            )
        self.tools = list(tools) if tools is not None else list(toolkits["coding"])
        self._active: set[StreamHandle] = set()

    def resolve_provider(self, name: str | ProviderId | None) -> ProviderId:
        """Map a provider name to a registered backend, falling back to the default."""
        try:
            provider = ProviderId(name)
            if provider not in self.providers:
                raise ConfigurationError(f"No adapter registered for {provider.value}")
            return provider
        except (ValueError, ConfigurationError) as e:
            if name:
                logger.warning(
                    f"Unknown provider {name!r} ({e}); using {self.default_provider.value}"
                )
            return self.default_provider

    async def chat_stream(
        self,
        prompt: str,
        options: ProviderOptions,
        on_chunk: ChunkCallback | None = None,
        continuation_state: ContinuationState | None = None,
    ) -> ChatResult:
        """Stream one model turn from the backend named in ``options``.

        Raises:
            ProviderError: the backend failed. An error chunk is delivered first.
        """
        provider_id = self.resolve_provider(options.provider)
        adapter = self.providers[provider_id]
        continuation_state = continuation_state or options.continuation_state

        handle = StreamHandle(on_chunk)
        self._active.add(handle)
        try:
            request = options.model_copy(
                update={
                    "provider": provider_id.value,
                    "conversation_history": optimize_history(
                        options.conversation_history, provider_id
                    ),
                }
            )
            if prompt:
                context = await self.prepare_context(options, handle)
                request = request.model_copy(update={"context": context})

            if handle.cancelled:
                return ChatResult(provider=provider_id, model=options.model, cancelled=True)

            if continuation_state is not None:
                await handle.emit(
                    ChatChunk(
                        type=ChunkType.CONTINUATION,
                        data=f"Continuing task: {continuation_state.user_input}",
                    )
                )

            try:
                return await adapter.chat_stream(
                    prompt, request, handle.emit, continuation_state, tools=self.tools
                )
            except ProviderError as e:
                error = e
            except Exception as e:
                error = ProviderError(provider_id.value, e)

            logger.error(f"Provider call failed: {error}")
            await handle.emit(ChatChunk(type=ChunkType.ERROR, data=str(error)))
            raise error
        finally:
            self._active.discard(handle)

    async def prepare_context(self, options: ProviderOptions, handle: StreamHandle) -> str | None:
        """Context text prepended to the user prompt.

        The compressed project payload is only built at the start of a session
        (or in full mode); later turns get a short pointer to the project.
        """
        parts: list[str] = []

        if options.context:
            parts.append(options.context)
        elif options.project_dir:
            if len(options.conversation_history) < 2 or options.context_mode == ContextMode.FULL:
                mode = permitted_context_mode(options.context_mode, options.tier)
                if mode != options.context_mode:
                    await handle.emit(
                        ChatChunk(type=ChunkType.TEXT, data=license_downgrade_notice(mode))
                    )
                payload = await SmartContext(options.project_dir, mode).build_context()
                parts.append(f"Project context:\n{payload}")
            else:
                parts.append(project_pointer(options.project_dir))

        for f in options.context_files:
            parts.append(f"File: {f.path}\n{f.content}")

        return "\n\n".join(parts) if parts else None

    def cancel(self) -> None:
        """Cancel whatever is in flight on every backend. Idempotent."""
        handles, self._active = self._active, set()
        for handle in handles:
            handle.cancel()
        for adapter in self.providers.values():
            adapter.cancel()

    async def list_models(self) -> list[ModelDescriptor]:
        """Merge the model lists of all backends, queried in parallel.

        A backend that fails contributes nothing; the call only fails when
        every backend failed.
        """
        order = [p for p in PROVIDER_ORDER if p in self.providers]
        results = await asyncio.gather(
            *(self.providers[p].list_models() for p in order), return_exceptions=True
        )

        models: list[ModelDescriptor] = []
        failures = 0
        for provider_id, result in zip(order, results):
            if isinstance(result, BaseException):
                failures += 1
                logger.warning(f"Could not list {provider_id.value} models: {result}")
                continue
            models.extend(m.model_copy(update={"provider": provider_id}) for m in result)

        if order and failures == len(order):
            raise ProviderError("all", "No backend could list its models")
        return models

    def list_providers(self) -> list[ProviderDescriptor]:
        return [
            ProviderDescriptor(
                id=provider_id,
                name=adapter.DISPLAY_NAME,
                description=adapter.DESCRIPTION,
                is_free=adapter.IS_FREE,
            )
            for provider_id, adapter in self.providers.items()
        ]

    async def pull_model(self, name: str, on_progress: ProgressCallback | None = None) -> bool:
        """Download a model into the local backend. Cancellable through ``cancel``."""
        adapter = self.providers.get(ProviderId.OLLAMA)
        if not isinstance(adapter, OllamaProvider):
            raise ConfigurationError("No local backend is configured")
        return await adapter.pull_model(name, on_progress)
