"""CLI commands for managing stored facts.

Provides subcommands for listing, searching, tagging, deactivating,
exporting and importing a user's facts, the analytics views, fact
extraction from a saved conversation and a preview of the
memory-augmented prompt.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from groq import AsyncGroq, GroqError

from .augmented import MemoryAugmentedPrompter
from .config import Settings, load_settings
from .errors import FactNotFoundError, TutormemError
from .logging import configure_logger
from .memory import (
    FactCandidate,
    FactExtractor,
    FactStore,
    MemoryManager,
    SearchParams,
)
from .memory.conflicts import ConflictStrategy
from .memory.models import FACT_TYPES, SORT_FIELDS, Fact
from .prompt import ChatPayload, Message

STRATEGIES = [s.value for s in ConflictStrategy]


def _get_manager(settings: Settings) -> MemoryManager:
    """Create a MemoryManager over the configured database."""
    store = FactStore(settings.db_path)
    store.init_db()
    event_logger = configure_logger(settings.log_dir)
    return MemoryManager(store, event_logger=event_logger)


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _format_fact(fact: Fact) -> str:
    """Format one fact as a table row."""
    subject = fact.subject or "-"
    confidence = f"{fact.confidence:.2f}" if fact.confidence is not None else "-"
    status = "" if fact.active else " (inactive)"
    line = f"{fact.id:>5}  {fact.fact_type:<15} {subject:<14} {confidence:>5}  {fact.details}{status}"
    if fact.tags:
        line += f"  [{', '.join(fact.tags)}]"
    return line


def _print_facts(facts: list[Fact]) -> None:
    print(f"\n{'ID':>5}  {'Type':<15} {'Subject':<14} {'Conf':>5}  Details")
    print("-" * 80)
    for fact in facts:
        print(_format_fact(fact))


def cmd_list(args: argparse.Namespace, manager: MemoryManager) -> int:
    """List a user's facts."""
    facts = manager.store.get_facts(
        args.user, include_inactive=args.all, fact_types=args.type
    )
    if not facts:
        print("No facts found.")
        return 0

    _print_facts(facts)
    print(f"\nTotal: {len(facts)} fact(s)")
    return 0


def cmd_search(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Search a user's facts."""
    try:
        params = SearchParams(
            query=args.query,
            fact_types=args.type,
            subjects=args.subject,
            include_inactive=args.all,
            min_confidence=args.min_confidence,
            limit=args.limit,
            offset=args.offset,
            sort_by=args.sort_by,
            sort_order=args.order,
        )
    except ValueError as e:
        return _error(str(e))

    result = manager.store.search(args.user, params)
    if not result.facts:
        print("No matching facts.")
        return 0

    _print_facts(result.facts)
    print(f"\nShowing {len(result.facts)} of {result.count} match(es)")
    if result.has_more:
        print(f"More results: --offset {args.offset + args.limit}")
    return 0


def cmd_relevant(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Show the facts most relevant to a topic."""
    facts = manager.relevant_facts(args.user, args.context, limit=args.limit)
    if not facts:
        print("No facts found.")
        return 0

    _print_facts(facts)
    return 0


def cmd_gaps(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Show what is missing from a user's profile."""
    gaps = manager.knowledge_gaps(args.user)

    print(f"\nKnowledge gaps for {args.user}")
    print("-" * 40)
    print(f"Missing types: {', '.join(gaps.missing_fact_types) or 'none'}")
    print(f"Low coverage subjects: {', '.join(gaps.low_coverage_subjects) or 'none'}")
    if gaps.recommended_questions:
        print("\nSuggested questions:")
        for question in gaps.recommended_questions:
            print(f"  - {question}")
    return 0


def cmd_profile(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Show a narrative summary of a user's facts."""
    profile = manager.profile(args.user, max_facts_per_type=args.max_per_type)
    print(profile.summary)
    if profile.fact_type_distribution:
        print()
        for fact_type, count in sorted(profile.fact_type_distribution.items()):
            print(f"  {fact_type:<15} {count}")
    return 0


def cmd_patterns(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Show learning patterns derived from a user's facts."""
    analysis = manager.patterns(args.user)
    sections = (
        ("Strengths", analysis.strengths),
        ("Challenges", analysis.challenges),
        ("Recommended approaches", analysis.recommended_approaches),
        ("Learning patterns", analysis.learning_patterns),
        ("Engagement suggestions", analysis.engagement_suggestions),
    )

    printed = False
    for title, items in sections:
        if not items:
            continue
        print(f"\n{title}:")
        for item in items:
            print(f"  - {item}")
        printed = True

    if not printed:
        print("No patterns found.")
    return 0


def cmd_add(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Add a fact through conflict resolution."""
    candidate = FactCandidate(
        fact_type=args.type,
        details=args.details,
        subject=args.subject,
        confidence=args.confidence,
        tags=tuple(args.tag or ()),
    )
    try:
        outcome = manager.resolver.resolve(args.user, candidate, strategy=args.strategy)
    except (TutormemError, ValueError) as e:
        return _error(str(e))

    print(f"{outcome.action.value}: {len(outcome.existing_facts)} existing fact(s)")
    if outcome.result is not None:
        print(_format_fact(outcome.result))
    return 0


def cmd_tag(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Replace the tags of a fact."""
    try:
        fact = manager.store.update_tags(args.fact_id, args.tags)
    except FactNotFoundError as e:
        return _error(str(e))

    print(f"Tags for fact {fact.id}: {', '.join(fact.tags) or '(none)'}")
    return 0


def cmd_deactivate(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Deactivate a fact."""
    try:
        fact = manager.store.deactivate_fact(args.fact_id)
    except FactNotFoundError as e:
        return _error(str(e))

    print(f"Deactivated fact {fact.id}")
    return 0


def cmd_export(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Export a user's facts as JSON."""
    export = manager.export(args.user, include_inactive=args.all)
    text = json.dumps(export.to_dict(), indent=2, ensure_ascii=False)

    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        print(f"Exported {len(export.facts)} fact(s) to {args.output}")
    else:
        print(text)
    return 0


def cmd_import(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Import facts from an export file."""
    try:
        data = json.loads(Path(args.path).read_text(encoding="utf-8"))
    except OSError as e:
        return _error(f"Cannot read {args.path}: {e}")
    except json.JSONDecodeError as e:
        return _error(f"Invalid JSON in {args.path}: {e}")

    try:
        result = manager.import_export(args.user, data, strategy=args.strategy)
    except ValueError as e:
        return _error(str(e))

    print(
        f"Imported {result.imported}, updated {result.updated}, "
        f"skipped {result.skipped}"
    )
    for failure in result.errors:
        print(f"  - {failure.error}: {failure.candidate!r}", file=sys.stderr)
    return 0


def cmd_extract(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Extract facts from a saved conversation."""
    try:
        data = json.loads(Path(args.path).read_text(encoding="utf-8"))
    except OSError as e:
        return _error(f"Cannot read {args.path}: {e}")
    except json.JSONDecodeError as e:
        return _error(f"Invalid JSON in {args.path}: {e}")

    messages = data.get("messages") if isinstance(data, dict) else data
    if not isinstance(messages, list) or not all(isinstance(m, dict) for m in messages):
        return _error("Conversation must be a list of {role, content} messages")

    try:
        client = AsyncGroq()
    except GroqError as e:
        return _error(f"Cannot create Groq client: {e}")

    manager.extractor = FactExtractor(client, model=args.settings.extraction_model)
    result = asyncio.run(
        manager.extract_from_conversation(
            args.user, messages, chat_id=args.chat_id, strategy=args.strategy
        )
    )

    print(
        f"Imported {result.imported}, updated {result.updated}, "
        f"skipped {result.skipped}"
    )
    return 0


def cmd_prompt(args: argparse.Namespace, manager: MemoryManager) -> int:
    """Preview the memory-augmented prompt for one message."""
    prompter = MemoryAugmentedPrompter(
        manager, args.settings, event_logger=manager.event_logger
    )
    payload = ChatPayload(
        settings=prompter.chat_settings(args.model, args.base_prompt),
        workspace_instructions=args.workspace,
        messages=[
            Message(id="preview", sequence_number=1, role="user", content=args.message)
        ],
    )

    assembled = asyncio.run(
        prompter.assemble(
            args.user,
            payload,
            subject=args.subject,
            include_insights=False,
            gemini=args.gemini,
        )
    )

    print(json.dumps(assembled.messages, indent=2, ensure_ascii=False))
    print(f"\nUsed tokens: {assembled.used_tokens} of {payload.settings.context_length}")
    return 0


def create_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    """Create the argument parser for the facts CLI."""
    default_strategy = (
        settings.conflict_strategy
        if settings
        else ConflictStrategy.PREFER_HIGH_CONFIDENCE.value
    )

    parser = argparse.ArgumentParser(
        prog="tutormem facts",
        description="Manage stored facts about users",
    )
    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    def user_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-u", "--user", required=True, help="User id")
        return sub

    # list command
    list_parser = user_command("list", "List a user's facts")
    list_parser.add_argument(
        "-a", "--all", action="store_true", help="Include inactive facts"
    )
    list_parser.add_argument(
        "-t", "--type", action="append", choices=FACT_TYPES, help="Filter by type"
    )

    # search command
    search_parser = user_command("search", "Search a user's facts")
    search_parser.add_argument("query", nargs="?", help="Words to look for")
    search_parser.add_argument(
        "-t", "--type", action="append", choices=FACT_TYPES, help="Filter by type"
    )
    search_parser.add_argument("-s", "--subject", action="append", help="Filter by subject")
    search_parser.add_argument(
        "-a", "--all", action="store_true", help="Include inactive facts"
    )
    search_parser.add_argument("--min-confidence", type=float, help="Minimum confidence")
    search_parser.add_argument("--limit", type=int, default=20, help="Page size")
    search_parser.add_argument("--offset", type=int, default=0, help="Results to skip")
    search_parser.add_argument("--sort-by", choices=SORT_FIELDS, default="updated_at")
    search_parser.add_argument("--order", choices=("asc", "desc"), default="desc")

    # relevant command
    relevant_parser = user_command("relevant", "Show facts relevant to a topic")
    relevant_parser.add_argument("context", help="Topic or question")
    relevant_parser.add_argument("--limit", type=int, default=10, help="Facts to show")

    # analytics commands
    user_command("gaps", "Show missing fact types and thin subjects")
    profile_parser = user_command("profile", "Summarize a user's facts")
    profile_parser.add_argument(
        "--max-per-type", type=int, default=3, help="Excerpts per category"
    )
    user_command("patterns", "Show learning patterns")

    # add command
    add_parser = user_command("add", "Add a fact")
    add_parser.add_argument("details", help="The fact itself")
    add_parser.add_argument(
        "-t", "--type", choices=FACT_TYPES, default="other", help="Fact type"
    )
    add_parser.add_argument("-s", "--subject", help="Academic subject")
    add_parser.add_argument("-c", "--confidence", type=float, help="Confidence in [0, 1]")
    add_parser.add_argument("--tag", action="append", help="Tag to attach")
    add_parser.add_argument("--strategy", choices=STRATEGIES, default=default_strategy)

    # tag command
    tag_parser = subparsers.add_parser("tag", help="Replace the tags of a fact")
    tag_parser.add_argument("fact_id", type=int, help="Fact id")
    tag_parser.add_argument("tags", nargs="*", help="New tags (none clears them)")

    # deactivate command
    deactivate_parser = subparsers.add_parser("deactivate", help="Deactivate a fact")
    deactivate_parser.add_argument("fact_id", type=int, help="Fact id")

    # export command
    export_parser = user_command("export", "Export facts as JSON")
    export_parser.add_argument(
        "-a", "--all", action="store_true", help="Include inactive facts"
    )
    export_parser.add_argument("-o", "--output", help="Write to this file")

    # import command
    import_parser = user_command("import", "Import facts from an export file")
    import_parser.add_argument("path", help="Export file to read")
    import_parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=ConflictStrategy.SKIP_DUPLICATES.value,
    )

    # extract command
    extract_parser = user_command("extract", "Extract facts from a conversation file")
    extract_parser.add_argument("path", help="JSON list of {role, content} messages")
    extract_parser.add_argument("--chat-id", help="Chat the conversation came from")
    extract_parser.add_argument("--strategy", choices=STRATEGIES, default=default_strategy)

    # prompt command
    prompt_parser = user_command("prompt", "Preview the memory-augmented prompt")
    prompt_parser.add_argument("message", help="The student's message")
    prompt_parser.add_argument("--model", default="gpt-4o", help="Model name")
    prompt_parser.add_argument(
        "--base-prompt", default="You are a friendly tutor.", help="User base prompt"
    )
    prompt_parser.add_argument("--workspace", default="", help="Workspace instructions")
    prompt_parser.add_argument("-s", "--subject", help="Only use facts for this subject")
    prompt_parser.add_argument(
        "--gemini", action="store_true", help="Use the {role, parts} format"
    )

    parser.set_defaults(settings=settings or Settings())
    return parser


def run_facts_cli(
    argv: list[str] | None = None, settings: Settings | None = None
) -> int:
    """Run the facts CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.
        settings: Settings to use. Loaded from disk if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    if settings is None:
        try:
            settings = load_settings()
        except ValueError as e:
            return _error(f"Invalid configuration: {e}")

    parser = create_parser(settings)
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "list": cmd_list,
        "search": cmd_search,
        "relevant": cmd_relevant,
        "gaps": cmd_gaps,
        "profile": cmd_profile,
        "patterns": cmd_patterns,
        "add": cmd_add,
        "tag": cmd_tag,
        "deactivate": cmd_deactivate,
        "export": cmd_export,
        "import": cmd_import,
        "extract": cmd_extract,
        "prompt": cmd_prompt,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    manager = _get_manager(settings)
    try:
        return handler(args, manager)
    finally:
        manager.store.close()


if __name__ == "__main__":
    sys.exit(run_facts_cli())
