"""
Health Buddy CLI - Ask questions about your health data.

Usage:
    python -m healthbuddy --data export.csv                       # Interactive REPL mode
    python -m healthbuddy --data export.csv "steps last 14 days"  # Single query mode
    python -m healthbuddy --help                                  # Show help
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent.parent / ".env")

from health_agents import (
    AuthorizationDenied,
    CsvMetricStore,
    HealthAssistant,
    HealthDataError,
    InMemoryMetricStore,
    RequestCancelled,
    load_settings,
)
from healthbuddy import __version__


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"

    CYAN = "\033[96m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"


def colored(text: str, color: str, bold: bool = False) -> str:
    """Apply color to text if terminal supports it."""
    if not sys.stdout.isatty():
        return text
    prefix = Colors.BOLD if bold else ""
    return f"{prefix}{color}{text}{Colors.RESET}"


SOURCE_COLORS = {
    "local_model": Colors.GREEN,
    "remote_model": Colors.BLUE,
    "fallback_template": Colors.YELLOW,
    "clarification": Colors.MAGENTA,
}


def print_header():
    """Print the CLI header."""
    print(colored("=" * 60, Colors.CYAN))
    print(colored("  Health Buddy - Your Health Data Assistant", Colors.CYAN, bold=True))
    print(colored("=" * 60, Colors.CYAN))
    print()
    print(colored("Commands:", Colors.DIM))
    print(colored("  /help    - Show this help", Colors.DIM))
    print(colored("  /new     - Save this conversation and start a new one", Colors.DIM))
    print(colored("  /context - Show the current conversation context", Colors.DIM))
    print(colored("  /quit    - Exit the program", Colors.DIM))
    print()


def print_context(assistant: HealthAssistant):
    """Print recent messages and the health values the assistant knows."""
    context = assistant.context_manager.get_context_for_llm()
    print(colored("\nConversation Context:", Colors.BLUE, bold=True))
    print(context or colored("  (empty)", Colors.DIM))
    print(colored(f"  Session: {assistant.context_manager.session_id}", Colors.DIM))


def format_response(response, verbose: bool = False) -> str:
    """Format an AssistantResponse for display."""
    lines = []
    color = SOURCE_COLORS.get(response.source, Colors.RESET)
    lines.append(
        colored(f"[{response.source.upper()}] ", color)
        + colored(f"({response.confidence:.0%} confidence)", Colors.DIM)
    )
    if verbose and response.intent is not None:
        lines.append(colored(f"  Intent: {response.intent}", Colors.DIM))
    if response.error_message:
        lines.append(colored(f"  {response.error_message}", Colors.YELLOW))

    lines.append("")
    lines.append(colored("-" * 60, Colors.DIM))
    lines.append(response.answer)

    if response.clarification is not None:
        for i, option in enumerate(response.clarification.options, 1):
            lines.append(colored(f"  {i}. {option.title}", Colors.MAGENTA))

    return "\n".join(lines)


def run_query(assistant: HealthAssistant, query: str, verbose: bool = False, as_json: bool = False, prefer_local: bool = False):
    """Run a single query and display results. Returns the response, or None on error."""
    try:
        print(colored("\nProcessing...", Colors.DIM))
        response = assistant.ask(query, prefer_local=prefer_local)
        if as_json:
            print(json.dumps({"query": query, **response.to_dict()}, indent=2, ensure_ascii=False))
        else:
            print(format_response(response, verbose=verbose))
        return response

    except AuthorizationDenied as e:
        print(colored(f"\nHealth data access denied: {e}", Colors.RED))
    except (KeyboardInterrupt, RequestCancelled):
        print(colored("\n\nQuery cancelled.", Colors.YELLOW))
    except HealthDataError as e:
        print(colored(f"\nError: {e}", Colors.RED))
        if verbose:
            import traceback
            traceback.print_exc()
    return None


def interactive_mode(assistant: HealthAssistant, verbose: bool = False, prefer_local: bool = False):
    """Run interactive REPL mode."""
    print_header()
    pending = None  # (response, original query) awaiting a clarification answer

    while True:
        try:
            query = input(colored("\nYou: ", Colors.GREEN, bold=True)).strip()

            if not query:
                continue

            # Handle commands
            if query.startswith("/"):
                cmd = query.lower()
                if cmd in ("/quit", "/exit", "/q"):
                    break
                elif cmd == "/help":
                    print_header()
                elif cmd == "/new":
                    session_id = assistant.new_session()
                    pending = None
                    print(colored(f"Started new session {session_id}", Colors.GREEN))
                elif cmd == "/context":
                    print_context(assistant)
                else:
                    print(colored(f"Unknown command: {cmd}", Colors.YELLOW))
                    print(colored("Type /help for available commands", Colors.DIM))
                continue

            if pending is not None:
                clarification, original = pending
                pending = None
                options = clarification.clarification.options
                if query.isdigit() and 1 <= int(query) <= len(options):
                    value = options[int(query) - 1].value
                else:
                    value = query
                try:
                    response = assistant.answer_clarification(clarification.ambiguity, value, original)
                except HealthDataError as e:
                    print(colored(f"\nError: {e}", Colors.RED))
                    continue
                print(format_response(response, verbose=verbose))
                continue

            response = run_query(assistant, query, verbose=verbose, prefer_local=prefer_local)
            if response is not None and response.needs_clarification:
                pending = (response, query)

        except KeyboardInterrupt:
            print(colored("\n\nUse /quit to exit.", Colors.YELLOW))
        except EOFError:
            break

    if assistant.context_manager.messages:
        assistant.new_session()
    print(colored("\nGoodbye! Remember to consult your healthcare provider.", Colors.CYAN))


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Health Buddy - Your Health Data Assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m healthbuddy --data export.csv                               # Interactive mode
  python -m healthbuddy --data export.csv "compare my heart rate"       # Single query
  python -m healthbuddy --data export.csv --json "sleep last 14 days"   # JSON output
        """
    )
    parser.add_argument(
        "query",
        nargs="?",
        help="Question to ask (omit for interactive mode)"
    )
    parser.add_argument(
        "--data",
        metavar="CSV",
        help="Health data export with timestamp, metric and value columns"
    )
    parser.add_argument(
        "--config",
        metavar="YAML",
        help="Settings file (default: config/health_buddy.yaml)"
    )
    parser.add_argument(
        "--prefer-local",
        action="store_true",
        help="Route free-form questions to the local model first"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show verbose output with debug info"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format (for scripting)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Health Buddy v{__version__}"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        print(colored("Loading health data...", Colors.DIM))
        settings = load_settings(args.config)
        if args.data:
            store = CsvMetricStore(args.data)
        else:
            print(colored("No --data given; answering without personal health data.", Colors.YELLOW))
            store = InMemoryMetricStore()
        assistant = HealthAssistant.from_settings(settings, store)
        assistant.orchestrator.connectivity.start()
        print(colored("Ready!\n", Colors.GREEN))
    except ValueError as e:
        print(colored(f"Configuration error: {e}", Colors.RED))
        sys.exit(1)
    except HealthDataError as e:
        print(colored(f"Could not load health data: {e}", Colors.RED))
        sys.exit(1)

    try:
        if args.query:
            response = run_query(
                assistant, args.query, verbose=args.verbose, as_json=args.json, prefer_local=args.prefer_local
            )
            if response is not None:
                assistant.new_session()
        else:
            if args.json:
                print(colored("Warning: --json flag ignored in interactive mode", Colors.YELLOW))
            interactive_mode(assistant, verbose=args.verbose, prefer_local=args.prefer_local)
    finally:
        assistant.orchestrator.connectivity.stop()


if __name__ == "__main__":
    main()
