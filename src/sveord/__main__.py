"""Command line entry point for sveord."""
import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from sveord.config import ensure_directories, settings
from sveord.logging_config import setup_logging
from sveord.models.base import SessionLocal, init_db
from sveord.models.quiz_models import QuestionType
from sveord.monitoring import start_monitoring
from sveord.services.backend_client import AuthenticationError, BackendClient, BackendError
from sveord.services.consolidation_service import export_unified_list, load_unified_list, split_unified_list
from sveord.services.enrichment_service import CancellationToken, EnrichmentService, GeminiEnrichmentProvider
from sveord.services.progress_service import ProgressService
from sveord.services.quiz_service import QuizService
from sveord.services.sync_service import SyncService
from sveord.services.word_service import WordService

logger = logging.getLogger("sveord")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sveord", description="Swedish vocabulary quiz and progress tools")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the local database tables")

    stats = commands.add_parser("stats", help="Show dashboard statistics for a user")
    stats.add_argument("--user", required=True)

    quiz = commands.add_parser("quiz", help="Generate and save a quiz")
    quiz.add_argument("--user", required=True)
    quiz.add_argument("--type", choices=[t.value for t in QuestionType], default=QuestionType.MEANING.value)
    quiz.add_argument("--count", type=int, default=None)

    practiced = commands.add_parser("practiced", help="Mark a saved quiz as practiced")
    practiced.add_argument("quiz_id", type=int)

    commands.add_parser("pull", help="Mirror remote words and progress into the local store")

    export = commands.add_parser("export", help="Write the unified word list as JSON")
    export.add_argument("--dir", default=None, help="Output directory (default EXPORT_DIR)")
    export.add_argument("--local", metavar="USER", default=None, help="Export from the local store for USER")

    importer = commands.add_parser("import", help="Load an exported unified list into the local store")
    importer.add_argument("path")
    importer.add_argument("--user", required=True)

    enrich = commands.add_parser("enrich", help="Generate missing enrichment with the AI provider")
    enrich.add_argument("--start", type=int, default=None)
    enrich.add_argument("--end", type=int, default=None)
    enrich.add_argument("--batch-size", type=int, default=None)
    enrich.add_argument("--overwrite", action="store_true", default=None)
    enrich.add_argument("--push", action="store_true", help="Also write results to the backend")

    return parser


def cmd_stats(args) -> int:
    with SessionLocal() as db:
        stats = ProgressService(db).get_dashboard_stats(args.user)
    for level, counts in stats.levels.items():
        print(f"{level:8} {counts.learned:5}/{counts.total:<5} reserved {counts.reserved:5}  {counts.percent:3}%")
    p = stats.proficiency
    print(f"Mastered {p.mastered}, to study {p.to_study}, unique {p.total_unique} ({p.completion_percent}%)")
    print(f"Today: {stats.velocity.learned_today} learned, {stats.velocity.reserved_today} reserved")
    return 0


def cmd_quiz(args) -> int:
    with SessionLocal() as db:
        service = QuizService(db)
        quiz = service.create_quiz(args.user, args.type, args.count)
        if quiz is None:
            print(service.last_error)
            return 1
        for number, question in enumerate(service.get_questions(quiz.id), start=1):
            print(f"{number}. {question.prompt or question.target_word}")
            for option in question.options:
                print(f"   - {option.word}")
        print(f"Saved quiz {quiz.id}")
    return 0


def cmd_practiced(args) -> int:
    with SessionLocal() as db:
        QuizService(db).mark_practiced(args.quiz_id)
    return 0


def cmd_import(args) -> int:
    words, progress = split_unified_list(load_unified_list(args.path), args.user)
    with SessionLocal() as db:
        word_service = WordService(db)
        word_service.import_words(words)
        ProgressService(db).import_progress(args.user, progress, id_map=word_service.id_map)
    return 0


async def cmd_pull(args) -> int:
    async with BackendClient() as backend:
        with SessionLocal() as db:
            counts = await SyncService(backend, db).pull()
    print(f"Pulled {counts['words']} words and {counts['progress']} progress rows")
    return 0


async def cmd_export(args) -> int:
    directory = args.dir or settings.paths.export_dir
    if args.local:
        with SessionLocal() as db:
            words = WordService(db).get_all_words()
            progress = ProgressService(db).get_user_progress(args.local)
            path = export_unified_list(words, progress, directory)
    else:
        async with BackendClient() as backend:
            path = await SyncService(backend).export_unified_list(directory)
    print(f"Unified list saved to: {path}")
    return 0


async def cmd_enrich(args) -> int:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, token.cancel)

    provider = GeminiEnrichmentProvider()
    with SessionLocal() as db:
        if args.push:
            async with BackendClient() as backend:
                result = await EnrichmentService(db, provider, backend).run(
                    token, args.start, args.end, args.batch_size, args.overwrite
                )
        else:
            result = await EnrichmentService(db, provider).run(
                token, args.start, args.end, args.batch_size, args.overwrite
            )
    state = "paused" if result.cancelled else "done"
    print(f"Enrichment {state}: {result.enriched} enriched, {result.failed} failed, next id {result.next_id}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run a command."""
    args = build_parser().parse_args(argv)

    ensure_directories()
    setup_logging("Starting sveord ...", args.log_level)
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
    init_db()

    try:
        if args.command == "init-db":
            return 0
        if args.command == "stats":
            return cmd_stats(args)
        if args.command == "quiz":
            return cmd_quiz(args)
        if args.command == "practiced":
            return cmd_practiced(args)
        if args.command == "import":
            return cmd_import(args)
        if args.command == "pull":
            return asyncio.run(cmd_pull(args))
        if args.command == "export":
            return asyncio.run(cmd_export(args))
        if args.command == "enrich":
            return asyncio.run(cmd_enrich(args))
    except AuthenticationError as e:
        logger.error(str(e))
        return 2
    except BackendError as e:
        logger.error(f"Backend failure: {e} ({len(e.partial)} rows fetched before it)")
        return 3
    except ValueError as e:
        logger.error(str(e))
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
