#!/usr/bin/env python3
"""Entry point for the macro research agent.

Usage:
    # Run one research session
    python scripts/run_research_agent.py --db research.db

    # With a goal and markdown reports
    python scripts/run_research_agent.py --goal "Is credit pricing the slowdown?" --reports-dir reports
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from src.macro_agent.agent import AgentConfig, Collaborators, ResearchAgent
from src.macro_agent.db import ResearchRepository
from src.macro_agent.errors import CompletionServiceError, ConfigurationError
from src.macro_agent.llm import FunctionCallingClient, GeminiConfig


def setup_logging(verbose: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: If True, set DEBUG level
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run one macro research session",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default goal against the local database
  python scripts/run_research_agent.py --db research.db

  # Short session for testing
  python scripts/run_research_agent.py --max-turns 4 --show-conversation
        """,
    )

    parser.add_argument(
        "--db",
        default="research.db",
        help="Path to SQLite database (default: research.db)",
    )

    parser.add_argument(
        "--goal",
        default=None,
        help="Research goal for this session (default: analyze the world model)",
    )

    parser.add_argument(
        "--max-turns",
        type=int,
        default=14,
        help="Maximum number of completion turns (default: 14)",
    )

    parser.add_argument(
        "--model",
        default="gemini-2.5-pro",
        help="LLM model to use (default: gemini-2.5-pro)",
    )

    parser.add_argument(
        "--reports-dir",
        default=None,
        help="Also write committed findings as markdown to this directory",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "--show-conversation",
        action="store_true",
        help="Print LLM interactions to console",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()
    setup_logging(args.verbose)

    logger = logging.getLogger(__name__)

    config = AgentConfig(
        model=args.model,
        max_turns=args.max_turns,
        db_path=args.db,
        reports_dir=args.reports_dir,
    )

    llm_client = FunctionCallingClient(GeminiConfig(model=args.model, max_output_tokens=config.max_tokens))
    logger.info(f"Using LLM model: {args.model}")

    repo = ResearchRepository(config.db_path)
    repo.connect()
    collaborators = Collaborators.from_environment(
        repo,
        judge_client=llm_client,
        reports_dir=config.reports_dir,
    )

    agent = ResearchAgent(
        collaborators,
        config=config,
        llm_client=llm_client,
        show_conversation=args.show_conversation,
    )

    try:
        result = agent.run(args.goal)
        logger.info(
            f"Session {result.session_id} {result.outcome.value} after {result.turns_used} turn(s); "
            f"finding: {result.finding_id or 'none'}"
        )
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Make sure GEMINI_API_KEY or GOOGLE_API_KEY is set")
        return 1

    except CompletionServiceError as e:
        logger.error(f"Completion service unreachable: {e}")
        return 1

    except KeyboardInterrupt:
        logger.info("Session interrupted by user")
        return 0

    finally:
        repo.close()


if __name__ == "__main__":
    sys.exit(main())
