"""Round state kept in bot-authored messages inside each round's thread.

Each thread holds one control message (the encoded `RoundState`) and one
instruction message (the human-readable status). Both are found by scanning
the thread for messages written by the bot itself. Read/write failures
propagate as `MessageStoreError`; text that doesn't decode simply means the
thread has no round.
"""

import logging
from typing import Optional

from bot.services.message_store import BotIdentity, MessageStore
from models import InstructionRecord, MessageRef, RoundRecord, RoundState, StoredMessage
from utils.codec import decode_round_state, encode_round_state
from utils.formatting import INSTRUCTION_PREFIX, format_instruction, parse_solver_id

logger = logging.getLogger(__name__)


class RoundStore:
    """Get and put rounds by (channel, thread)."""

    def __init__(self, store: MessageStore, identity: BotIdentity, solve_emoji: str = "✅"):
        self.store = store
        self.identity = identity
        self.solve_emoji = solve_emoji

    async def _own_replies(self, channel_id: str, thread_id: str) -> list[StoredMessage]:
        bot_id = await self.identity.get()
        replies = await self.store.list_thread_replies(channel_id, thread_id)
        return [m for m in replies if m.author_id == bot_id and m.text]

    async def find_round(self, channel_id: str, thread_id: str) -> Optional[RoundRecord]:
        """Return the first bot message in the thread that decodes as a round."""
        for message in await self._own_replies(channel_id, thread_id):
            state = decode_round_state(message.text)
            if state is not None:
                return RoundRecord(ref=message.ref, state=state)
        return None

    async def create_round(self, state: RoundState) -> RoundRecord:
        """Post the control message for a new round into its thread."""
        ref = await self.store.post_message(state.channel_id, encode_round_state(state), thread_id=state.thread_id)
        logger.info(f"Created control message {ref.message_id} for thread {state.thread_id}")
        return RoundRecord(ref=ref, state=state)

    async def write_round(self, ref: MessageRef, state: RoundState) -> RoundRecord:
        """Overwrite a control message with the full, freshly encoded round."""
        await self.store.update_message(ref, encode_round_state(state))
        logger.info(f"Round {state.thread_id} in {state.channel_id} is now {state.status.value}")
        return RoundRecord(ref=ref, state=state)

    async def create_instruction_message(self, state: RoundState) -> MessageRef:
        return await self.store.post_message(
            state.channel_id, format_instruction(state, self.solve_emoji), thread_id=state.thread_id
        )

    async def find_instruction_message(self, channel_id: str, thread_id: str) -> Optional[InstructionRecord]:
        for message in await self._own_replies(channel_id, thread_id):
            if message.text.startswith(INSTRUCTION_PREFIX):
                return InstructionRecord(ref=message.ref, text=message.text, solver_id=parse_solver_id(message.text))
        return None

    async def update_instruction_message(
        self, channel_id: str, thread_id: str, state: RoundState, solver_id: Optional[str] = None
    ) -> bool:
        """Sync the instruction message with the round's status.

        Returns False if the thread has no instruction message.
        """
        instruction = await self.find_instruction_message(channel_id, thread_id)
        if instruction is None:
            logger.warning(f"No instruction message found in thread {thread_id}")
            return False

        await self.store.update_message(instruction.ref, format_instruction(state, self.solve_emoji, solver_id))
        return True
