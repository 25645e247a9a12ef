"""Tracing scope for one optimization call."""

from collections.abc import Iterable

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

tracer = trace.get_tracer(__name__)

SPAN_NAME = "context.summarize"


class OptimizationContext:
    """Owns the span of a single optimization call.

    Always ``dispose()`` it, on every exit path; disposing twice is harmless.
    """

    def __init__(
        self,
        model: str,
        user_hash: str,
        chat_id: str | None,
        cutoff_index: int,
        preserved_tool_ids: Iterable[str],
    ):
        self.model = model
        self.user_hash = user_hash
        self.chat_id = chat_id
        self.cutoff_index = cutoff_index
        self.span = tracer.start_span(SPAN_NAME)
        self.span.set_attribute("model", model)
        self.span.set_attribute("user.hash", user_hash)
        if chat_id:
            self.span.set_attribute("chat.id", chat_id)
        self.span.set_attribute("cutoff.index", cutoff_index)
        self.span.set_attribute("preserved.tool_ids", sorted(preserved_tool_ids))
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def set_attribute(self, key: str, value) -> None:
        if not self._disposed:
            self.span.set_attribute(key, value)

    def record_error(self, error: BaseException) -> None:
        if self._disposed:
            return
        self.span.record_exception(error)
        self.span.set_status(Status(StatusCode.ERROR, str(error)))

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.span.end()
