"""Summarize a single persisted chat message and propose a chat title."""

from dataclasses import dataclass

from loguru import logger

from casechat.optimizer.errors import PromptValidationError, SummarizationError
from casechat.optimizer.summarizer import SummarizationCapability
from casechat.prompts.summarization import MESSAGE_SUMMARY_PROMPT, NO_CONTEXT, UNTITLED_CHAT
from casechat.store.chats import ChatStore

CONTEXT_SEPARATOR = "\n----\n"


@dataclass
class MessageSummary:
    optimized_content: str
    chat_title: str
    new_title: bool


class MessageRecordSummarizer:
    """
    Writes ``optimized_content`` for stored messages.

    The summary is grounded in the messages that precede the target in
    (turn_id, message_id) order. With ``deep`` the raw content of those
    messages is used, otherwise their existing summaries.
    """

    MAX_PROMPT_CHARS = 50_000

    def __init__(self, capability: SummarizationCapability, store: ChatStore):
        self.capability = capability
        self.store = store

    async def summarize_message_record(
        self,
        chat_id: str,
        turn_id: int,
        message_id: int,
        write: bool = False,
        deep: bool = False,
    ) -> MessageSummary:
        """
        Summarize one message.

        Args:
            chat_id: Chat holding the message.
            turn_id: Turn of the message.
            message_id: Message id within the turn.
            write: Store the summary and the proposed title.
            deep: Build context from raw prior content instead of prior summaries.

        Returns:
            The summary, the proposed title and whether it differs from the current one.

        Raises:
            SummarizationError: message missing, content unusable, or model failure.
            PromptValidationError: the assembled prompt is empty or too long.
        """
        chat = self.store.get_chat(chat_id)
        target = self.store.get_message(chat_id, turn_id, message_id) if chat else None
        if target is None:
            raise SummarizationError(f"Message not found: {chat_id}/{turn_id}/{message_id}")
        if not isinstance(target.content, str) or not target.content:
            raise SummarizationError(f"Message content is invalid or missing: {chat_id}/{turn_id}/{message_id}")

        prior = []
        for msg in self.store.list_messages(chat_id):
            if (msg.turn_id, msg.message_id) >= (turn_id, message_id):
                break
            content = msg.content if deep else msg.optimized_content
            if isinstance(content, str) and content.strip():
                prior.append(content)

        current_title = chat.title or UNTITLED_CHAT
        prompt = MESSAGE_SUMMARY_PROMPT.format(
            context=CONTEXT_SEPARATOR.join(prior) if prior else NO_CONTEXT,
            message=target.content,
            title=current_title,
        )
        if not prompt.strip() or len(prompt) > self.MAX_PROMPT_CHARS:
            raise PromptValidationError(f"Message summary prompt is invalid ({len(prompt)} chars)")

        summary = await self.capability.summarize(prompt)
        optimized = summary.summary_text.strip()
        if not optimized:
            raise SummarizationError("Message summary is blank")
        title = summary.short_title.strip() or current_title

        result = MessageSummary(
            optimized_content=optimized,
            chat_title=title,
            new_title=title != chat.title,
        )

        if write:
            self.store.update_message_optimized_content(chat_id, turn_id, message_id, optimized)
            self.store.update_title(chat_id, title)
            logger.info(f"Stored summary for {chat_id}/{turn_id}/{message_id} (title: {title})")

        return result
