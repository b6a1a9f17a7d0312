"""Main research loop for the macro research agent."""

import json
import logging
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.macro_agent.agent.collaborators import Collaborators
from src.macro_agent.db.models import SessionRecord, SessionStatus
from src.macro_agent.errors import CompletionServiceError
from src.macro_agent.llm.client import FunctionCallingClient, GeminiConfig
from src.macro_agent.llm.messages import (
    CompletionResponse,
    ConversationTurn,
    ReasoningBlock,
    Role,
    StopReason,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from src.macro_agent.llm.prompts import (
    CONTINUE_PROMPT,
    DEFAULT_GOAL,
    RESEARCH_SYSTEM_PROMPT,
    format_initial_prompt,
)
from src.macro_agent.tools.base import ToolContext
from src.macro_agent.tools.registry import ToolRegistry, create_default_registry

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Configuration for the research agent.

    Attributes:
        model: LLM model identifier
        max_turns: Maximum number of completion round trips per session
        db_path: Path to the SQLite database
        max_tokens: Maximum output tokens per completion
        reports_dir: If set, committed findings are also written as markdown
    """
    model: str = "gemini-2.5-pro"
    max_turns: int = 14
    db_path: str = "research.db"
    max_tokens: int = 8192
    reports_dir: str | None = None

    def to_json(self) -> str:
        """Serialize config to JSON."""
        return json.dumps({
            "model": self.model,
            "max_turns": self.max_turns,
            "db_path": self.db_path,
            "max_tokens": self.max_tokens,
            "reports_dir": self.reports_dir,
        })


class SessionOutcome(str, Enum):
    """How a research session ended."""
    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"


@dataclass
class SessionResult:
    """Result of one research session.

    Attributes:
        session_id: Session identifier
        finding_id: Last finding committed during the session, if any
        outcome: How the session ended
        turns_used: Completion round trips made
        finding_ids: Every finding committed during the session, in order
        error: Completion failure that ended the session early
    """
    session_id: str
    finding_id: str | None = None
    outcome: SessionOutcome = SessionOutcome.COMPLETED
    turns_used: int = 0
    finding_ids: list[str] = field(default_factory=list)
    error: str | None = None


class ResearchAgent:
    """Bounded research loop over a function-calling completion service.

    Each session seeds one user message with the goal, then alternates
    completion calls and sequential tool execution until the model ends
    its turn or the turn budget runs out. Findings are persisted by the
    commit_finding tool as they happen; nothing is rolled back when the
    budget is exhausted.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        config: AgentConfig | None = None,
        llm_client: Any = None,
        show_conversation: bool = False,
        tools: ToolRegistry | None = None,
    ):
        """Initialize the agent.

        Args:
            collaborators: Store and services the tools work against
            config: Agent configuration
            llm_client: Completion client (if None, a Gemini client is built)
            show_conversation: If True, print every content block to console
            tools: Tool registry (if None, the default tool set is used)
        """
        self.config = config or AgentConfig()
        self._collaborators = collaborators
        self._llm_client = llm_client or FunctionCallingClient(
            GeminiConfig(model=self.config.model, max_output_tokens=self.config.max_tokens)
        )
        self._show_conversation = show_conversation
        self._tools = tools or create_default_registry(collaborators)
        self._session: SessionRecord | None = None
        self._turn_number = 0

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def run(self, goal: str | None = None) -> SessionResult:
        """Run one research session.

        Args:
            goal: Research goal (a default goal is used if None)

        Returns:
            SessionResult for the session

        Raises:
            ConfigurationError: If the completion client has no credentials
            CompletionServiceError: If the first completion call fails
        """
        # Fails before any turn is taken
        self._llm_client.validate()

        self._turn_number = 0
        initial_prompt = format_initial_prompt(goal)
        self._init_session(goal or DEFAULT_GOAL)
        result = SessionResult(session_id=self._session.session_id)

        logger.info(f"Starting research session: {result.session_id}")

        turns = [ConversationTurn.user_text(initial_prompt)]
        self._print_header("user")
        self._print_block(TextBlock(text=initial_prompt))

        outcome = SessionOutcome.BUDGET_EXHAUSTED
        while self._turn_number < self.config.max_turns:
            self._turn_number += 1
            logger.debug(f"Turn {self._turn_number}")

            try:
                response = self._llm_client.generate_with_tools(
                    turns,
                    self._tools.get_all_schemas(),
                    system_instruction=RESEARCH_SYSTEM_PROMPT,
                )
            except CompletionServiceError as e:
                if self._turn_number == 1:
                    logger.error(f"Completion service unreachable: {e}")
                    self._finish_session(result, SessionStatus.FAILED, str(e))
                    raise
                logger.error(f"Completion failed on turn {self._turn_number}: {e}")
                result.error = str(e)
                outcome = SessionOutcome.FAILED
                break

            turns.append(ConversationTurn(role=Role.ASSISTANT, blocks=list(response.blocks)))
            self._render_response(response)

            if response.tool_uses:
                turns.append(self._execute_tool_calls(response.tool_uses, result))
            elif response.stop_reason == StopReason.MAX_TOKENS:
                logger.info("Response truncated at max tokens; asking the model to continue")
                turns.append(ConversationTurn.user_text(CONTINUE_PROMPT))
            else:
                outcome = SessionOutcome.COMPLETED
                break

        result.outcome = outcome
        result.turns_used = self._turn_number

        if outcome == SessionOutcome.COMPLETED:
            self._finish_session(result, SessionStatus.COMPLETED, "Model ended its turn")
        elif outcome == SessionOutcome.FAILED:
            self._finish_session(result, SessionStatus.FAILED, result.error)
        else:
            logger.info(f"Max turns ({self.config.max_turns}) reached")
            self._finish_session(result, SessionStatus.BUDGET_EXHAUSTED, "Max turns reached")

        logger.info(
            f"Session {result.session_id} {outcome.value} after {result.turns_used} turn(s); "
            f"findings committed: {len(result.finding_ids)}"
        )
        return result

    def _execute_tool_calls(
        self,
        tool_uses: list[ToolUseBlock],
        result: SessionResult,
    ) -> ConversationTurn:
        """Execute tool calls in order and collect their results.

        Returns:
            A user turn holding one result block per invocation
        """
        blocks = []
        self._print_header("tool")

        for call in tool_uses:
            context = ToolContext(
                session_id=result.session_id,
                turn_number=self._turn_number,
                last_finding_id=result.finding_id,
            )
            tool_result = self._tools.execute(
                call.name,
                call.arguments,
                context,
                invocation_id=call.id,
            )

            finding_id = tool_result.metadata.get("finding_id")
            if finding_id and not tool_result.is_error:
                result.finding_id = finding_id
                result.finding_ids.append(finding_id)

            block = ToolResultBlock(
                invocation_id=call.id,
                tool_name=call.name,
                content=tool_result.output,
                is_error=tool_result.is_error,
            )
            self._print_block(block)
            blocks.append(block)

        return ConversationTurn(role=Role.USER, blocks=blocks)

    # =========================================================================
    # Session audit
    # =========================================================================

    def _init_session(self, goal: str) -> None:
        """Create the session record."""
        self._session = SessionRecord(
            session_id=str(uuid.uuid4())[:8],
            goal=goal,
            status=SessionStatus.RUNNING,
            model_id=self.config.model,
            config_json=self.config.to_json(),
            created_at=datetime.now(),
        )
        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return
        try:
            repo.insert_session(self._session)
        except Exception as e:
            logger.warning(f"Failed to record session: {e}")

    def _finish_session(
        self,
        result: SessionResult,
        status: SessionStatus,
        reason: str | None,
    ) -> None:
        """Record how the session ended."""
        self._session.status = status
        self._session.turns_used = self._turn_number
        self._session.finding_id = result.finding_id
        self._session.termination_reason = reason
        self._session.terminated_at = datetime.now()

        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return
        try:
            repo.update_session(self._session)
        except Exception as e:
            logger.warning(f"Failed to update session record: {e}")

    # =========================================================================
    # Rendering
    # =========================================================================

    def _render_response(self, response: CompletionResponse) -> None:
        self._print_header("assistant")
        if not response.blocks:
            logger.info(f"[Turn {self._turn_number}] empty response ({response.stop_reason.value})")
        for block in response.blocks:
            self._print_block(block)

    def _print_header(self, role: str) -> None:
        if not self._show_conversation:
            return
        bold, reset = "\033[1m", "\033[0m"
        print(f"\n{bold}{'='*60}{reset}")
        print(f"{bold}[Turn {self._turn_number}] {role.upper()}{reset}")
        print(f"{'='*60}")

    def _print_block(self, block: Any) -> None:
        """Log a content block and print it to console if enabled."""
        # Color codes for terminal
        COLORS = {
            "assistant": "\033[94m",  # Blue
            "user": "\033[92m",       # Green
            "tool": "\033[95m",       # Magenta
            "error": "\033[91m",      # Red
            "reset": "\033[0m",
            "bold": "\033[1m",
            "dim": "\033[2m",
        }
        reset = COLORS["reset"]

        if isinstance(block, ReasoningBlock):
            preview = block.text[:300] + ("..." if len(block.text) > 300 else "")
            logger.debug(f"[Turn {self._turn_number}] reasoning: {block.text}")
            line = f"{COLORS['dim']}[thinking] {preview}{reset}"
        elif isinstance(block, TextBlock):
            logger.debug(f"[Turn {self._turn_number}] text: {block.text}")
            line = f"{COLORS['assistant']}{block.text}{reset}"
        elif isinstance(block, ToolUseBlock):
            args_str = json.dumps(block.arguments, indent=2, default=str)
            if len(args_str) > 500:
                args_str = args_str[:500] + "..."
            logger.info(f"[Turn {self._turn_number}] -> {block.name}({json.dumps(block.arguments, default=str)[:200]})")
            line = f"{COLORS['tool']}{COLORS['bold']}  -> {block.name}{reset}{COLORS['tool']}({args_str}){reset}"
        elif isinstance(block, ToolResultBlock):
            if block.is_error:
                logger.warning(f"[Turn {self._turn_number}] {block.tool_name} failed: {block.content[:200]}")
                line = f"{COLORS['error']}  x {block.tool_name}: {block.content[:300]}{reset}"
            else:
                line = f"{COLORS['user']}  + {block.tool_name} ({len(block.content)} chars){reset}"
        else:
            return

        if self._show_conversation:
            print(line)
            sys.stdout.flush()


def run_session(
    goal: str | None,
    collaborators: Collaborators,
    config: AgentConfig | None = None,
    llm_client: Any = None,
    show_conversation: bool = False,
) -> str | None:
    """Run one research session.

    Args:
        goal: Research goal
        collaborators: Store and services the tools work against
        config: Agent configuration
        llm_client: Completion client (if None, a Gemini client is built)
        show_conversation: If True, print the conversation to console

    Returns:
        Id of the last finding committed during the session, or None

    Raises:
        ConfigurationError: If the completion client has no credentials
        CompletionServiceError: If the first completion call fails
    """
    agent = ResearchAgent(
        collaborators,
        config=config,
        llm_client=llm_client,
        show_conversation=show_conversation,
    )
    return agent.run(goal).finding_id
