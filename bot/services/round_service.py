"""Round lifecycle: start, solve, edit and close puzzle rounds.

A round is OPEN until its OP either confirms a correct answer (SOLVED) or
closes it (CLOSED). Both end states are final. Every transition rewrites the
round's control message first and then brings the instruction message, the
question message and the scoreboard in line. A failing platform call aborts
the remaining steps.
"""

import logging
from collections.abc import Callable
from typing import Literal, Optional, Union

from bot.services.confirmation import (
    Action,
    CancelPrivateSolve,
    CancelSolve,
    CloseRound,
    ConfirmPrivateSolve,
    ConfirmSolve,
    PrivateAnswerPayload,
    SolvePromptPayload,
    ThreadRefPayload,
    ViewAnswer,
    capped,
    fit_payload,
    prompt_buttons,
    question_buttons,
    solved_buttons,
)
from bot.services.message_store import BotIdentity, MessageStore, MessageStoreError
from bot.services.round_store import RoundStore
from bot.services.scoreboard_service import ScoreboardService
from models import MessageRef, RoundRecord, RoundState, RoundStatus
from utils.codec import encode_payload
from utils.formatting import (
    NUDGE_TEXT,
    format_closed_question_message,
    format_congratulations,
    format_dm_status,
    format_question_message,
    format_solve_prompt,
    format_solved_notice,
    mention,
    parse_question_text,
)
from utils.snowflake import year_from_snowflake

logger = logging.getLogger(__name__)

GUESS_PREFIXES = ("my guess", "guess:", "answer:", "is it")

MAX_QUESTION_LENGTH = 1500

START_USAGE = (
    "Usage: `/logic <your question>`\n"
    "Example: `/logic I speak without a mouth and hear without ears. What am I?`"
)

ConfirmAction = Union[ConfirmSolve, ConfirmPrivateSolve]
CancelAction = Union[CancelSolve, CancelPrivateSolve]


def looks_like_guess(text: str) -> bool:
    """Heuristic for "this thread reply is a guess"."""
    return text.lower().strip().startswith(GUESS_PREFIXES)


def edit_form_prefill(
    payload: ThreadRefPayload, user_id: str, question_message_text: str
) -> tuple[Optional[str], Optional[str]]:
    """Prefill the edit form from the pressed question message, without any lookups.

    Returns (question, None), or (None, reason) if the presser isn't the OP.
    Submitting the form runs the full checks against the round.
    """
    if payload.op is not None and user_id != payload.op:
        return (None, "Only the OP can edit the question.")
    return (parse_question_text(question_message_text), None)


class RoundService:
    """Service for managing puzzle rounds."""

    def __init__(
        self,
        store: MessageStore,
        rounds: RoundStore,
        scoreboard: ScoreboardService,
        identity: BotIdentity,
        test_channel_id: str = "",
        solve_emoji: str = "✅",
        guess_predicate: Callable[[str], bool] = looks_like_guess,
    ):
        self.store = store
        self.rounds = rounds
        self.scoreboard = scoreboard
        self.identity = identity
        self.test_channel_id = test_channel_id
        self.solve_emoji = solve_emoji
        self.guess_predicate = guess_predicate

    @staticmethod
    def thread_year(thread_id: str) -> str:
        """Rounds count toward the year their question was posted in."""
        return year_from_snowflake(thread_id)

    @staticmethod
    def _root_ref(channel_id: str, thread_id: str) -> MessageRef:
        return MessageRef(channel_id=channel_id, message_id=thread_id)

    def _allows_self_solve(self, channel_id: str) -> bool:
        return bool(self.test_channel_id) and channel_id == self.test_channel_id

    async def get_question_text(self, state: RoundState) -> str:
        """Return the round's question, parsing the question message for older rounds."""
        if state.question:
            return state.question
        try:
            root = await self.store.get_message(state.channel_id, state.thread_id)
        except MessageStoreError:
            logger.exception(f"Error reading question message {state.thread_id}")
            return "(unknown question)"
        return parse_question_text(root.text) if root else "(unknown question)"

    async def _update_question_message(self, state: RoundState, question: str) -> None:
        """Re-render the question message for the round's status."""
        root = self._root_ref(state.channel_id, state.thread_id)
        payload = encode_payload(ThreadRefPayload.for_thread(state.channel_id, state.thread_id, state.op))

        if state.status is RoundStatus.CLOSED:
            await self.store.update_message(root, format_closed_question_message(state.op, question))
        elif state.status is RoundStatus.SOLVED:
            await self.store.update_message(
                root, format_question_message(state.op, question), buttons=solved_buttons(), payload=payload
            )
        else:
            await self.store.update_message(
                root, format_question_message(state.op, question), buttons=question_buttons(), payload=payload
            )

    # Start

    async def start_round(self, channel_id: str, op_id: str, question: str) -> tuple[bool, str]:
        """Post a question and open a round in a new thread under it.

        Returns (success, message) tuple.
        """
        question = question.strip()
        if not question:
            return (False, START_USAGE)
        if len(question) > MAX_QUESTION_LENGTH:
            return (False, f"That question is too long (max {MAX_QUESTION_LENGTH} characters).")

        logger.info(f"Starting new round in channel {channel_id} for {op_id}")

        try:
            root = await self.store.post_message(channel_id, format_question_message(op_id, question))
            thread_id = root.message_id

            state = RoundState(
                op=op_id,
                status=RoundStatus.OPEN,
                thread_id=thread_id,
                channel_id=channel_id,
                question=question,
            )
            # The buttons' payload needs the thread ID, which only exists once posted
            await self._update_question_message(state, question)

            await self.rounds.create_round(state)
            await self.rounds.create_instruction_message(state)
            await self.scoreboard.add_question(channel_id, op_id, self.thread_year(thread_id))
        except MessageStoreError:
            logger.exception(f"Error starting round in channel {channel_id}")
            return (False, "Error starting round.")

        logger.info(f"Round {thread_id} started successfully")
        return (True, "Puzzle posted and round started. Use the thread under the puzzle for guesses.")

    # Solve trigger

    async def handle_reaction(self, channel_id: str, message_id: str, reactor_id: str, emoji: str) -> bool:
        """Treat the OP's solve reaction on a thread reply as "this guess is correct".

        Anything that doesn't qualify is ignored without telling anyone.
        Returns True if a confirmation prompt was sent to the OP.
        """
        if emoji != self.solve_emoji:
            return False

        try:
            message = await self.store.get_message(channel_id, message_id)
            if message is None or message.thread_id is None:
                logger.debug(f"Reacted message {message_id} is not a thread reply")
                return False

            record = await self.rounds.find_round(message.channel_id, message.thread_id)
            if record is None:
                logger.debug(f"No round found in thread {message.thread_id}")
                return False

            state = record.state
            if state.status is not RoundStatus.OPEN:
                logger.info(f"Ignoring reaction, round {state.thread_id} is {state.status.value}")
                return False
            if reactor_id != state.op:
                logger.info(f"Ignoring reaction by {reactor_id}, who is not the OP")
                return False
            if message.author_id == await self.identity.get():
                logger.info("Ignoring reaction on the bot's own message")
                return False
            if message.author_id == state.op and not self._allows_self_solve(message.channel_id):
                logger.info("Ignoring reaction on the OP's own message")
                return False

            answer = message.text.strip() or "(no text)"
            await self.request_solve(record, message.author_id, answer)
        except MessageStoreError:
            logger.exception(f"Error handling reaction on message {message_id}")
            return False

        return True

    async def request_solve(
        self, record: RoundRecord, candidate_id: str, answer: str, private: bool = False
    ) -> MessageRef:
        """DM the OP a Yes/No prompt asking whether `candidate_id` solved the round."""
        state = record.state
        question = capped(await self.get_question_text(state))
        answer = capped(answer)

        dm_channel_id = await self.store.open_direct_channel(state.op)
        permalink = await self.store.permalink(self._root_ref(state.channel_id, state.thread_id))

        payload_type = PrivateAnswerPayload if private else SolvePromptPayload
        payload = fit_payload(
            payload_type(
                channel_id=state.channel_id,
                thread_id=state.thread_id,
                candidate_id=candidate_id,
                round_control_id=record.ref.message_id,
                question_text=question,
                answer_text=answer,
                dm_channel_id=dm_channel_id,
                op=state.op,
            )
        )

        # Post first, then fill in the buttons once the DM's own ID is known
        text = format_solve_prompt(candidate_id, payload.question_text, payload.answer_text, private=private)
        dm_ref = await self.store.post_message(dm_channel_id, text)
        payload.dm_message_id = dm_ref.message_id
        await self.store.update_message(
            dm_ref, text, buttons=prompt_buttons(private, permalink), payload=encode_payload(payload)
        )

        logger.info(f"Sent solve confirmation for round {state.thread_id} to OP {state.op}")
        return dm_ref

    async def submit_private_answer(
        self, channel_id: str, thread_id: str, submitter_id: str, answer: str
    ) -> tuple[bool, str]:
        """Send an answer to the OP privately instead of posting it in the thread."""
        answer = answer.strip()
        if not answer:
            return (False, "Your answer was empty.")

        try:
            record = await self.rounds.find_round(channel_id, thread_id)
            if record is None:
                return (False, "❌ Error: Round not found. The puzzle may have been deleted.")
            if record.state.status is RoundStatus.SOLVED:
                return (False, "❌ This puzzle has already been solved.")
            if record.state.status is RoundStatus.CLOSED:
                return (False, "❌ This round has been closed.")
            if submitter_id == record.state.op and not self._allows_self_solve(channel_id):
                return (False, "You can't answer your own question.")

            await self.request_solve(record, submitter_id, answer, private=True)
        except MessageStoreError:
            logger.exception(f"Error submitting private answer for round {thread_id}")
            return (False, "Error sending your answer.")

        return (True, "Your answer was sent privately to the OP. You'll hear back once they decide.")

    # Confirmation

    @staticmethod
    def _is_prompt_op(record: Optional[RoundRecord], payload: SolvePromptPayload, user_id: str) -> bool:
        """The OP is read from the round, or from the prompt itself once the round is gone."""
        op = record.state.op if record is not None else payload.op
        return op is None or user_id == op

    async def _settle_stale_prompt(self, record: Optional[RoundRecord], dm_ref: MessageRef) -> Optional[str]:
        """Close out a prompt whose round is gone or already finished.

        Returns the reason, or None if the round is still open.
        """
        if record is None:
            reason = "This round no longer exists (no changes made)."
        elif record.state.status is RoundStatus.SOLVED:
            reason = "This round was already solved (no changes made)."
        elif record.state.status is RoundStatus.CLOSED:
            reason = "This round was already closed (no changes made)."
        else:
            return None

        await self.store.update_message(dm_ref, format_dm_status(reason, confirmed=False))
        return reason

    async def _update_dm_best_effort(self, dm_ref: MessageRef, text: str) -> None:
        try:
            await self.store.update_message(dm_ref, format_dm_status(text, confirmed=False))
        except MessageStoreError:
            logger.warning(f"Failed to update DM {dm_ref.message_id}")

    async def _notify(self, user_id: str, text: str) -> None:
        """Send a DM that is nice to have; failures are logged and dropped."""
        try:
            dm_channel_id = await self.store.open_direct_channel(user_id)
            await self.store.post_message(dm_channel_id, text)
        except MessageStoreError:
            logger.warning(f"Failed to send DM to {user_id}")

    async def solve(self, record: RoundRecord, winner_id: str, answer: str) -> RoundState:
        """Apply the OPEN -> SOLVED transition and award the point."""
        state = record.state.model_copy(update={"status": RoundStatus.SOLVED, "answer": answer})
        await self.rounds.write_round(record.ref, state)

        year = self.thread_year(state.thread_id)
        await self.scoreboard.add_points(state.channel_id, winner_id, 1, year)

        await self.store.post_message(state.channel_id, format_solved_notice(winner_id), thread_id=state.thread_id)
        await self._update_question_message(state, await self.get_question_text(state))
        await self.rounds.update_instruction_message(state.channel_id, state.thread_id, state, solver_id=winner_id)
        return state

    async def confirm_solve(self, action: ConfirmAction, user_id: str) -> tuple[bool, str]:
        """Handle the OP pressing "Yes" on a solve prompt."""
        payload = action.payload
        private = isinstance(action, ConfirmPrivateSolve)
        dm_ref = MessageRef(channel_id=payload.dm_channel_id, message_id=payload.dm_message_id)

        try:
            # The round is read fresh: another prompt may have settled it meanwhile
            record = await self.rounds.find_round(payload.channel_id, payload.thread_id)
            if not self._is_prompt_op(record, payload, user_id):
                return (False, "Only the OP can confirm this solve.")
            reason = await self._settle_stale_prompt(record, dm_ref)
            if reason:
                return (False, reason)

            state = await self.solve(record, payload.candidate_id, payload.answer_text)
            await self.store.update_message(
                dm_ref,
                format_dm_status(
                    f"Confirmed - round solved and 1 point awarded to {mention(payload.candidate_id)}.",
                    confirmed=True,
                ),
            )
        except MessageStoreError:
            logger.exception(f"Error confirming solve for round {payload.thread_id}")
            await self._update_dm_best_effort(dm_ref, "Error solving round. Please try again.")
            return (False, "Error solving round.")

        if private:
            await self._notify(payload.candidate_id, "✅ Your private answer was accepted - you earned 1 point.")
        else:
            await self._notify(
                payload.candidate_id,
                format_congratulations(
                    payload.question_text, payload.answer_text, state.op, self.thread_year(state.thread_id)
                ),
            )

        return (True, "Round solved.")

    async def cancel_solve(self, action: CancelAction, user_id: str) -> tuple[bool, str]:
        """Handle the OP pressing "No" on a solve prompt."""
        payload = action.payload
        private = isinstance(action, CancelPrivateSolve)
        dm_ref = MessageRef(channel_id=payload.dm_channel_id, message_id=payload.dm_message_id)

        try:
            record = await self.rounds.find_round(payload.channel_id, payload.thread_id)
            if not self._is_prompt_op(record, payload, user_id):
                return (False, "Only the OP can answer this prompt.")
            reason = await self._settle_stale_prompt(record, dm_ref)
            if reason:
                return (False, reason)

            await self.store.update_message(dm_ref, format_dm_status("Cancelled - round remains open.", confirmed=False))
        except MessageStoreError:
            logger.exception(f"Error cancelling solve for round {payload.thread_id}")
            return (False, "Error cancelling.")

        if private:
            await self._notify(payload.candidate_id, "❌ Your private answer was not accepted this time.")

        return (True, "Cancelled - round remains open.")

    # OP actions

    async def validate_op_action(
        self, channel_id: str, thread_id: str, user_id: str, action: Literal["edit", "close"]
    ) -> tuple[Optional[RoundRecord], Optional[str]]:
        """Check that `user_id` may edit or close the round.

        Returns (record, None) if allowed, otherwise (None, reason).
        """
        record = await self.rounds.find_round(channel_id, thread_id)
        if record is None:
            return (None, "Round not found.")

        if user_id != record.state.op:
            action_text = "edit the question" if action == "edit" else "close this round"
            return (None, f"Only the OP can {action_text}.")

        if record.state.status is RoundStatus.CLOSED:
            return (None, "Cannot edit a closed round." if action == "edit" else "This round is already closed.")

        if record.state.status is RoundStatus.SOLVED:
            return (None, "Cannot edit a solved round." if action == "edit" else "Cannot close a solved round.")

        return (record, None)

    async def edit_question(self, channel_id: str, thread_id: str, user_id: str, question: str) -> tuple[bool, str]:
        question = question.strip()
        if not question:
            return (False, "The question can't be empty.")
        if len(question) > MAX_QUESTION_LENGTH:
            return (False, f"That question is too long (max {MAX_QUESTION_LENGTH} characters).")

        try:
            record, error = await self.validate_op_action(channel_id, thread_id, user_id, "edit")
            if error:
                return (False, error)

            state = record.state.model_copy(update={"question": question})
            await self.rounds.write_round(record.ref, state)
            await self._update_question_message(state, question)
            await self.store.post_message(channel_id, "✏️ The OP edited the question.", thread_id=thread_id)
        except MessageStoreError:
            logger.exception(f"Error editing question of round {thread_id}")
            return (False, "Error editing the question.")

        return (True, "Question updated.")

    async def close_round(self, channel_id: str, thread_id: str, user_id: str) -> tuple[bool, str]:
        """Close an open round. It no longer counts as a question asked."""
        try:
            record, error = await self.validate_op_action(channel_id, thread_id, user_id, "close")
            if error:
                return (False, error)

            state = record.state.model_copy(update={"status": RoundStatus.CLOSED})
            await self.rounds.write_round(record.ref, state)
            await self.rounds.update_instruction_message(channel_id, thread_id, state)
            await self.scoreboard.remove_question(channel_id, state.op, self.thread_year(thread_id))
            await self._update_question_message(state, await self.get_question_text(state))
        except MessageStoreError:
            logger.exception(f"Error closing round {thread_id}")
            return (False, "Error closing the round.")

        return (True, "Round closed.")

    async def view_answer(self, channel_id: str, thread_id: str) -> tuple[bool, str]:
        try:
            record = await self.rounds.find_round(channel_id, thread_id)
            if record is None:
                return (False, "Round not found.")
            if record.state.status is not RoundStatus.SOLVED:
                return (False, "This round hasn't been solved yet.")
            if not record.state.answer:
                return (False, "The answer to this round wasn't recorded.")
            instruction = await self.rounds.find_instruction_message(channel_id, thread_id)
        except MessageStoreError:
            logger.exception(f"Error reading answer of round {thread_id}")
            return (False, "Error reading the answer.")

        lines = [f"**Answer:** {record.state.answer}"]
        if instruction and instruction.solver_id:
            lines.append(f"Solved by {mention(instruction.solver_id)}")
        return (True, "\n".join(lines))

    async def nudge_if_solved(self, channel_id: str, thread_id: str, author_id: str, text: str) -> bool:
        """Remind people guessing in a solved round that it's already over."""
        if not self.guess_predicate(text):
            return False

        try:
            if author_id == await self.identity.get():
                return False
            record = await self.rounds.find_round(channel_id, thread_id)
            if record is None or record.state.status is not RoundStatus.SOLVED:
                return False
            await self.store.post_message(channel_id, NUDGE_TEXT, thread_id=thread_id)
        except MessageStoreError:
            logger.exception(f"Error checking for auto-nudge in thread {thread_id}")
            return False

        return True

    # Button dispatch

    async def handle_action(self, action: Action, user_id: str) -> tuple[bool, str]:
        """Run a button action that doesn't need a form. Returns (success, message)."""
        if isinstance(action, (ConfirmSolve, ConfirmPrivateSolve)):
            return await self.confirm_solve(action, user_id)
        if isinstance(action, (CancelSolve, CancelPrivateSolve)):
            return await self.cancel_solve(action, user_id)

        thread_id = action.payload.thread_id
        if thread_id is None:
            return (False, "Round not found.")
        if isinstance(action, CloseRound):
            return await self.close_round(action.payload.channel_id, thread_id, user_id)
        if isinstance(action, ViewAnswer):
            return await self.view_answer(action.payload.channel_id, thread_id)

        return (False, "That button needs a form.")
