"""Main entry point for the Grammar Coach service and its terminal commands."""

import argparse
import sys
from typing import List, Optional

from dotenv import load_dotenv

import grammar_coach.ui.cli as cli
from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.utils.logger import setup_logger
from grammar_coach.utils.error_handler import (APIError, AuthenticationError, ConfigError,
                                               GradingError, SubmissionValidationError,
                                               UserCancelledError)

logger = setup_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="grammar-coach", description="AI grading for grammar explanations.")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP service.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    grade = sub.add_parser("grade", help="Grade one explanation from the terminal.")
    grade.add_argument("--name", default="")
    grade.add_argument("--email", default="")
    grade.add_argument("--grade", default="")
    grade.add_argument("--target", default="")
    grade.add_argument("--user-id", default="")
    grade.add_argument("--file", help="Read the explanation from this UTF-8 file instead of prompting.")
    grade.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt.")

    history = sub.add_parser("history", help="Show stored results for a LINE user id.")
    history.add_argument("user_id")
    return parser


def run_serve(settings: Settings, host: str, port: int) -> None:
    import uvicorn
    from grammar_coach.web.app import create_app

    logger.info(f"Starting Grammar Coach HTTP service on {host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_level="debug" if config.DEBUG else "info")


def run_grade(settings: Settings, args: argparse.Namespace) -> None:
    from grammar_coach.core.grader import StageStatus, SubmissionPipeline
    from grammar_coach.core.submission import Submission

    cli.display_welcome()
    cli.display_step(1, "Collecting the explanation...")
    if args.file:
        with open(args.file, "r", encoding="utf-8") as f:
            explanation = f.read()
    else:
        explanation = cli.prompt_for_text("Explanation", required=True)

    submission = Submission.from_payload({
        "name": args.name,
        "email": args.email,
        "grade": args.grade,
        "target": args.target,
        "explanation": explanation,
        "userId": args.user_id,
    })

    if not args.yes and not cli.confirm_action("Send this explanation for grading?", default=True):
        raise UserCancelledError("User declined to grade.")

    cli.display_step(2, "Grading and delivering...")
    pipeline = SubmissionPipeline.from_settings(settings)
    outcome = pipeline.process(submission)
    cli.display_graded_result(outcome)
    failed = [s.stage for s in outcome.stages if s.status is StageStatus.FAILED]
    if failed:
        cli.display_warning(f"Graded, but these deliveries failed: {', '.join(failed)}. See the log for details.")
    else:
        cli.display_success("Graded and delivered.")
    cli.display_farewell()


def run_history(settings: Settings, user_id: str) -> None:
    from grammar_coach.core.results import ResultStore

    store = ResultStore.from_settings(settings)
    cli.display_history(user_id, store.history_for(user_id))


def main(argv: Optional[List[str]] = None) -> int:
    """Parses arguments and runs the requested command. Returns the exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    try:
        settings = Settings.from_env()
        if command == "serve":
            run_serve(settings, getattr(args, "host", "0.0.0.0"), getattr(args, "port", 8000))
        elif command == "grade":
            run_grade(settings, args)
        elif command == "history":
            run_history(settings, args.user_id)
        return 0
    except ConfigError as e:
        logger.critical(f"Configuration error: {e}", exc_info=config.DEBUG)
        cli.display_error(f"Setup Error: {e}")
    except SubmissionValidationError as e:
        logger.info(f"Invalid submission: {e}")
        cli.display_error(f"Invalid submission: {e}")
    except (GradingError, APIError, AuthenticationError) as e:
        logger.error(f"{type(e).__name__}: {e}", exc_info=config.DEBUG)
        cli.display_error(f"{type(e).__name__}: {e}")
    except UserCancelledError as e:
        logger.info(f"Operation cancelled by user: {e}")
    except KeyboardInterrupt:
        logger.info("Operation interrupted by user (Ctrl+C).")
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        cli.display_error(f"Missing file: {e}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
