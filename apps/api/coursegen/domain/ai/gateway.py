import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import BoundedSemaphore
from typing import Callable

from coursegen.domain.ai.providers.base import ChatProvider, ResponseFormat
from coursegen.domain.errors import GenerationError


logger = logging.getLogger(__name__)


class GenerationGateway:
    """
    Resilient wrapper around one text-generation provider.

    Every call races a per-call timeout and is retried with exponential
    backoff (2 ** attempt seconds). In-flight calls are bounded by a semaphore.
    """

    def __init__(
        self,
        *,
        primary: ChatProvider,
        max_concurrency: int = 4,
        acquire_timeout_ms: int = 30000,
        default_retries: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.primary = primary
        self.default_retries = max(0, int(default_retries))
        self._max_concurrency = max(1, int(max_concurrency))
        self._semaphore = BoundedSemaphore(value=self._max_concurrency)
        self._acquire_timeout_sec = max(0.01, int(acquire_timeout_ms) / 1000)
        self._sleep = sleep
        # 타임아웃된 호출의 스레드가 남을 수 있으므로 동시성 상한보다 여유 있게 둔다.
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_concurrency * 2,
            thread_name_prefix="ai-call",
        )

    def call(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 3000,
        timeout_sec: float = 30,
        retries: int | None = None,
        response_format: ResponseFormat = "text",
    ) -> str:
        retry_count = self.default_retries if retries is None else max(0, int(retries))
        last_error: Exception | None = None

        for attempt in range(retry_count + 1):
            try:
                return self._call_once(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    max_tokens=max_tokens,
                    timeout_sec=timeout_sec,
                    response_format=response_format,
                )
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "AI call attempt %d/%d failed (%s): %s",
                    attempt + 1,
                    retry_count + 1,
                    getattr(self.primary, "name", "provider"),
                    exc,
                )
                if attempt < retry_count:
                    wait_sec = float(2**attempt)
                    logger.debug("Retrying in %.1fs", wait_sec)
                    self._sleep(wait_sec)

        raise GenerationError(
            f"ai_call_failed_after_{retry_count + 1}_attempts:{last_error}",
            attempt_count=retry_count + 1,
        ) from last_error

    def _call_once(
        self,
        *,
        prompt: str,
        system_prompt: str | None,
        max_tokens: int,
        timeout_sec: float,
        response_format: ResponseFormat,
    ) -> str:
        acquired = self._semaphore.acquire(timeout=self._acquire_timeout_sec)
        if not acquired:
            raise RuntimeError("ai_backpressure_busy")
        try:
            logger.debug(
                "Calling %s model %s (prompt=%d chars, max_tokens=%d, format=%s)",
                getattr(self.primary, "name", "provider"),
                getattr(self.primary, "model", "?"),
                len(prompt),
                max_tokens,
                response_format,
            )
            future = self._executor.submit(
                self.primary.send_chat,
                system_prompt=system_prompt,
                user_prompt=prompt,
                max_tokens=max_tokens,
                response_format=response_format,
                timeout_sec=timeout_sec,
            )
            try:
                text = future.result(timeout=timeout_sec)
            except FutureTimeoutError as exc:
                future.cancel()
                raise TimeoutError(f"ai_call_timeout:{timeout_sec:g}s") from exc
        finally:
            self._semaphore.release()

        if not isinstance(text, str) or not text.strip():
            raise RuntimeError("ai_empty_output")
        return text

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
