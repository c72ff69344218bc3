"""Main CLI entry point for kbingest"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from kbingest.config import KBConfig


def create_parser():
    """Create the main argument parser"""
    parser = argparse.ArgumentParser(
        prog="kbingest",
        description="Knowledge Base Ingest - turn policy documents into reviewable knowledge entries"
    )

    # Global options
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        help="Override data directory path"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Init command
    init_parser = subparsers.add_parser("init", help="Initialize kbingest configuration and database")
    init_parser.add_argument("--api-key", help="OpenRouter API key")

    # Config command
    config_parser = subparsers.add_parser("config", help="Manage kbingest configuration")
    config_subparsers = config_parser.add_subparsers(dest="config_action", help="Configuration actions")

    config_show_parser = config_subparsers.add_parser("show", help="Show current configuration")
    config_show_parser.add_argument(
        "--section", choices=["openrouter", "extraction", "segmentation", "logging"],
        help="Show specific section only"
    )

    config_set_parser = config_subparsers.add_parser("set", help="Set configuration value")
    config_set_parser.add_argument("key", help="Configuration key (e.g., 'segmentation.max_entries')")
    config_set_parser.add_argument("value", help="Configuration value")

    config_get_parser = config_subparsers.add_parser("get", help="Get configuration value")
    config_get_parser.add_argument("key", help="Configuration key")

    config_subparsers.add_parser("validate", help="Validate current configuration")
    config_subparsers.add_parser("test", help="Test OpenRouter API connectivity")

    # Process command
    process_parser = subparsers.add_parser("process", help="Extract knowledge entries without storing them")
    process_parser.add_argument("file_path", help="Path to PDF, text or markdown file")
    process_parser.add_argument("--title", "-t", help="Document title (default: file name)")
    process_parser.add_argument("--max-entries", "-m", type=int, help="Maximum number of entries")
    process_parser.add_argument("--no-ai", action="store_true", help="Use heuristic segmentation only")
    process_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    # Ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Process a document and store its entries for review")
    ingest_parser.add_argument("file_path", help="Path to PDF, text or markdown file")
    ingest_parser.add_argument("--title", "-t", help="Document title (default: file name)")
    ingest_parser.add_argument("--description", "-d", help="Document description")
    ingest_parser.add_argument("--max-entries", "-m", type=int, help="Maximum number of entries")
    ingest_parser.add_argument("--no-ai", action="store_true", help="Use heuristic segmentation only")

    # Review commands
    entries_parser = subparsers.add_parser("entries", help="List entries generated from a document")
    entries_parser.add_argument("document_id", type=int, help="Document ID")

    search_parser = subparsers.add_parser("search", help="Search the knowledge base")
    search_parser.add_argument("query", nargs="?", help="Text to look for in titles and content")
    search_parser.add_argument("--category", help="Filter by category")
    search_parser.add_argument("--tag", action="append", dest="tags", help="Filter by tag (repeatable)")
    search_parser.add_argument("--limit", "-l", type=int, default=10, help="Maximum number of results")

    approve_parser = subparsers.add_parser("approve", help="Approve a knowledge entry")
    approve_parser.add_argument("entry_id", type=int, help="Entry ID")

    status_parser = subparsers.add_parser("status", help="Show processing status of a document")
    status_parser.add_argument("document_id", type=int, help="Document ID")

    delete_parser = subparsers.add_parser("delete", help="Delete a document and its entries")
    delete_parser.add_argument("document_id", type=int, help="Document ID")
    delete_parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")

    improve_parser = subparsers.add_parser("improve", help="Suggest a clearer version of an entry using AI")
    improve_parser.add_argument("entry_id", type=int, help="Entry ID")
    improve_parser.add_argument("--apply", action="store_true", help="Save the improved title and content")

    subparsers.add_parser("stats", help="Show knowledge base statistics")
    subparsers.add_parser("categories", help="List categories in use")
    subparsers.add_parser("tags", help="List tags in use")

    return parser


def _config_path(args) -> Optional[Path]:
    return Path(args.config) if getattr(args, 'config', None) else None


def _load_config(args) -> KBConfig:
    """Load configuration honouring the global --config and --data-dir options"""
    config = KBConfig.load(_config_path(args))
    if getattr(args, 'data_dir', None):
        config.data_dir = args.data_dir
    return config


def _read_document(file_path: str):
    from kbingest.models import RawDocument

    path = Path(file_path)
    if not path.is_file():
        print(f"❌ File not found: {path}", file=sys.stderr)
        sys.exit(1)
    return RawDocument.from_path(path)


def handle_init(args):
    """Handle init command"""
    try:
        from kbingest.storage.database import DatabaseManager

        config = _load_config(args)

        if args.api_key:
            config.openrouter.api_key = args.api_key

        config.save(_config_path(args))

        config.data_path.mkdir(parents=True, exist_ok=True)
        config.logs_path.mkdir(parents=True, exist_ok=True)
        config.objects_path.mkdir(parents=True, exist_ok=True)
        DatabaseManager(config).initialize_database()

        print("✅ kbingest initialized successfully!")
        print(f"📁 Data directory: {config.data_path}")
        print(f"🗄️  Database: {config.database_path}")

        if not config.openrouter.api_key:
            print("⚠️  Warning: No OpenRouter API key configured. AI segmentation is disabled until "
                  "OPENROUTER_API_KEY is set or 'kbingest init --api-key' is run.")

    except Exception as e:
        print(f"❌ Error initializing kbingest: {e}", file=sys.stderr)
        sys.exit(1)


def handle_config(args):
    """Handle config command"""
    from kbingest.config import ConfigValidationError

    try:
        config = _load_config(args)

        if not args.config_action:
            print("ℹ️  Use 'kbingest config show' to view configuration or 'kbingest config --help' for options.")
            return

        if args.config_action == "show":
            _show_config(config, args.section)

        elif args.config_action == "set":
            config.update_setting(args.key, args.value)
            config.validate_and_raise()
            config.save(_config_path(args))
            print(f"✅ Set {args.key} = {args.value}")
            print("💾 Configuration saved")

        elif args.config_action == "get":
            value = config.get_setting(args.key)
            print(f"{args.key} = {value}")

        elif args.config_action == "validate":
            errors = config.validate()
            if errors:
                print("❌ Configuration validation failed:")
                for error in errors:
                    print(f"  - {error}")
                sys.exit(1)
            else:
                print("✅ Configuration is valid")

        elif args.config_action == "test":
            _test_config(config)

    except ConfigValidationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, TypeError) as e:
        print(f"❌ Error managing configuration: {e}", file=sys.stderr)
        sys.exit(1)


def _show_config(config: KBConfig, section: Optional[str] = None):
    """Show configuration details"""
    if section == "openrouter" or not section:
        print("🔗 OpenRouter Configuration:")
        print(f"  API Key: {'✅ Set' if config.openrouter.api_key else '❌ Not set'}")
        print(f"  Base URL: {config.openrouter.base_url}")
        print(f"  Default Model: {config.openrouter.default_model}")
        print(f"  Fallback Models: {', '.join(config.openrouter.fallback_models)}")
        print(f"  Timeout: {config.openrouter.timeout}s")
        print(f"  Max Retries: {config.openrouter.max_retries}")
        if not section:
            print()

    if section == "extraction" or not section:
        print("📄 Extraction Configuration:")
        print(f"  Min Text Length: {config.extraction.min_text_length} chars")
        print(f"  Max File Size: {config.extraction.max_file_size // (1024*1024)}MB")
        if not section:
            print()

    if section == "segmentation" or not section:
        print("✂️  Segmentation Configuration:")
        print(f"  Max Entries: {config.segmentation.max_entries}")
        print(f"  Use AI: {'✅' if config.segmentation.use_ai else '❌'}")
        print(f"  Prompt Char Limit: {config.segmentation.prompt_char_limit}")
        print(f"  Temperature: {config.segmentation.temperature}")
        print(f"  Focus Areas: {', '.join(config.segmentation.focus_areas)}")
        if not section:
            print()

    if section == "logging" or not section:
        print("📝 Logging Configuration:")
        print(f"  Level: {config.logging.level}")
        print(f"  File Enabled: {'✅' if config.logging.file_enabled else '❌'}")
        print(f"  Console Enabled: {'✅' if config.logging.console_enabled else '❌'}")
        print(f"  Max File Size: {config.logging.max_file_size // (1024*1024)}MB")
        print(f"  Backup Count: {config.logging.backup_count}")
        if not section:
            print()

    if not section:
        print("⚙️  General Configuration:")
        print(f"  Data Directory: {config.data_path}")


def _test_config(config: KBConfig):
    """Test OpenRouter connectivity"""
    from kbingest.errors import LLMAPIError
    from kbingest.llm.provider import LLMProvider

    print("🧪 Testing OpenRouter connection...")
    try:
        provider = LLMProvider(config.openrouter)
    except LLMAPIError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    if provider.test_connectivity():
        print("✅ OpenRouter connection successful")
    else:
        print("❌ OpenRouter connection failed")
        sys.exit(1)


def handle_process(args):
    """Handle process command"""
    from kbingest.processing.orchestrator import DocumentProcessor

    config = _load_config(args)
    document = _read_document(args.file_path)

    use_ai = False if args.no_ai else None
    processor = DocumentProcessor.from_config(config, use_ai=use_ai)
    result = processor.process_document(document, max_entries=args.max_entries, title=args.title)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        if not result.success:
            sys.exit(1)
        return

    if not result.success:
        print(f"❌ Processing failed: {'; '.join(result.errors)}", file=sys.stderr)
        sys.exit(1)

    analysis = result.analysis
    print(f"✅ Processed: {document.name}")
    print(f"   📄 Pages: {result.page_count}")
    print(f"   🔍 Extraction: {result.extraction_method} ({len(result.extracted_text)} chars)")
    print(f"   🏷️  Type: {analysis.document_type}, structure: {analysis.structure}, "
          f"complexity: {analysis.complexity} (confidence: {analysis.confidence:.2f})")
    print(f"   ✂️  Segmentation: {result.segmentation_method}, {len(result.entries)} entries")
    if result.total_tokens:
        print(f"   💰 Tokens: {result.total_tokens}, estimated cost: ${result.estimated_cost:.4f}")
    print()

    for i, entry in enumerate(result.entries, 1):
        print(f"{i:3d}. [{entry.category}] {entry.title} ({entry.confidence_score:.2f})")


def handle_ingest(args):
    """Handle ingest command"""
    from kbingest.errors import DocumentValidationError
    from kbingest.processing.orchestrator import DocumentProcessor
    from kbingest.storage.ingest import KnowledgeBaseIngestor

    config = _load_config(args)
    document = _read_document(args.file_path)

    use_ai = False if args.no_ai else None
    ingestor = KnowledgeBaseIngestor(
        config, processor=DocumentProcessor.from_config(config, use_ai=use_ai)
    )

    print(f"🔄 Ingesting file: {document.name}")
    try:
        summary = ingestor.ingest(
            document, title=args.title, description=args.description, max_entries=args.max_entries
        )
    except DocumentValidationError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    if summary['status'] != 'completed':
        print(f"❌ Processing failed: {summary['error']}", file=sys.stderr)
        print(f"   📊 Document ID: {summary['document_id']}")
        sys.exit(1)

    print(f"✅ Successfully ingested: {document.name}")
    print(f"   📊 Document ID: {summary['document_id']}")
    print(f"   📝 Entries awaiting review: {summary['entries_created']}")


def handle_entries(args):
    """Handle entries command"""
    from kbingest.storage.ingest import KnowledgeBaseIngestor

    ingestor = KnowledgeBaseIngestor(_load_config(args))
    entries = ingestor.get_document_entries(args.document_id)

    if not entries:
        print(f"📭 No entries for document {args.document_id}")
        return

    print(f"📚 {len(entries)} entries for document {args.document_id}:")
    for entry in entries:
        status = '✅' if entry['is_approved'] else '⏳'
        print(f"  {status} #{entry['id']} [{entry['category']}] {entry['title']} "
              f"({entry['confidence_score']:.2f})")


def handle_search(args):
    """Handle search command"""
    from kbingest.storage.knowledge_store import KnowledgeStore

    store = KnowledgeStore(_load_config(args))
    results = store.search_entries(
        query=args.query, category=args.category, tags=args.tags, limit=args.limit
    )

    if not results:
        print("🔍 No matching entries")
        return

    print(f"🔍 {len(results)} matching entries:")
    for entry in results:
        print(f"  #{entry['id']} [{entry['category']}] {entry['title']} (relevance: {entry['relevance']:.1f})")
        if entry.get('tags'):
            print(f"      🏷️  {', '.join(entry['tags'])}")


def handle_approve(args):
    """Handle approve command"""
    from kbingest.storage.ingest import KnowledgeBaseIngestor

    ingestor = KnowledgeBaseIngestor(_load_config(args))
    if ingestor.approve_entry(args.entry_id):
        print(f"✅ Entry {args.entry_id} approved")
    else:
        print(f"❌ Entry not found: {args.entry_id}", file=sys.stderr)
        sys.exit(1)


def handle_status(args):
    """Handle status command"""
    from kbingest.storage.ingest import KnowledgeBaseIngestor

    ingestor = KnowledgeBaseIngestor(_load_config(args))
    status = ingestor.get_processing_status(args.document_id)

    if status is None:
        print(f"❌ No processing job for document {args.document_id}", file=sys.stderr)
        sys.exit(1)

    print(f"📊 Document {args.document_id}: {status['status']} ({status['progress']}%)")
    print(f"   Step: {status['current_step']}")
    print(f"   Entries generated: {status['entries_generated']}")
    print(f"   Estimated cost: ${status['estimated_cost']:.4f}")
    if status['error_message']:
        print(f"   ❌ Error: {status['error_message']}")


def handle_delete(args):
    """Handle delete command"""
    from kbingest.storage.ingest import KnowledgeBaseIngestor

    if not args.force:
        response = input(f"⚠️  Delete document {args.document_id} and all its entries? (y/N): ")
        if response.lower() not in ['y', 'yes']:
            print("❌ Delete cancelled")
            return

    ingestor = KnowledgeBaseIngestor(_load_config(args))
    if ingestor.delete_document(args.document_id):
        print(f"🗑️  Document {args.document_id} deleted")
    else:
        print(f"❌ Document not found: {args.document_id}", file=sys.stderr)
        sys.exit(1)


def handle_improve(args):
    """Handle improve command"""
    from kbingest.errors import LLMAPIError
    from kbingest.llm.provider import LLMProvider
    from kbingest.segmentation.delegated import EntryEnhancer
    from kbingest.storage.knowledge_store import KnowledgeStore

    config = _load_config(args)
    store = KnowledgeStore(config)
    entry = store.get_entry(args.entry_id)
    if entry is None:
        print(f"❌ Entry not found: {args.entry_id}", file=sys.stderr)
        sys.exit(1)

    try:
        enhancer = EntryEnhancer(LLMProvider(config.openrouter))
    except LLMAPIError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    print(f"🤖 Improving entry {args.entry_id}...")
    improved = enhancer.improve_entry(entry['title'], entry['content'], entry.get('original_text') or "")
    questions = enhancer.suggest_questions(improved['content'])

    print(f"📌 {improved['title']}")
    print(improved['content'])
    if improved['tags']:
        print(f"🏷️  Suggested tags: {', '.join(improved['tags'])}")
    if questions:
        print("❓ Answers questions like:")
        for question in questions:
            print(f"  - {question}")

    if args.apply:
        patch = {'title': improved['title'], 'content': improved['content']}
        if improved['tags']:
            patch['tags'] = improved['tags']
        store.update_row('knowledge_base', args.entry_id, patch)
        print(f"💾 Entry {args.entry_id} updated")


def handle_stats(args):
    """Handle stats command"""
    from kbingest.storage.database import DatabaseManager

    db_manager = DatabaseManager(_load_config(args))
    if db_manager.get_schema_version() is None:
        print("❌ Database not initialized. Run 'kbingest init' first.", file=sys.stderr)
        sys.exit(1)

    stats = db_manager.get_database_stats()
    print("📊 Knowledge Base Statistics:")
    print(f"  Documents: {stats['kb_documents_count']}")
    print(f"  Processing jobs: {stats['kb_processing_jobs_count']}")
    print(f"  Entries: {stats['knowledge_base_count']} ({stats['approved_entries_count']} approved)")
    print(f"  Database size: {stats['database_size_bytes'] // 1024}KB")
    print(f"  Schema version: {stats['schema_version']}")
    print(f"  Integrity: {'✅ ok' if db_manager.check_database_integrity() else '❌ failed'}")


def handle_categories(args):
    """Handle categories command"""
    from kbingest.storage.knowledge_store import KnowledgeStore

    categories = KnowledgeStore(_load_config(args)).list_categories()
    print("📂 Categories:")
    for category in categories:
        print(f"  - {category}")


def handle_tags(args):
    """Handle tags command"""
    from kbingest.storage.knowledge_store import KnowledgeStore

    tags = KnowledgeStore(_load_config(args)).list_tags()
    print("🏷️  Tags:")
    for tag in tags:
        print(f"  - {tag}")


def main():
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args()

    # Setup logging early
    from kbingest.errors import ErrorHandler
    from kbingest.logging_setup import setup_cli_logging
    logger = setup_cli_logging(verbose=getattr(args, 'verbose', False))

    if not args.command:
        parser.print_help()
        return

    logger.debug(f"Executing command: {args.command}")

    command_handlers = {
        "init": handle_init,
        "config": handle_config,
        "process": handle_process,
        "ingest": handle_ingest,
        "entries": handle_entries,
        "search": handle_search,
        "approve": handle_approve,
        "status": handle_status,
        "delete": handle_delete,
        "improve": handle_improve,
        "stats": handle_stats,
        "categories": handle_categories,
        "tags": handle_tags,
    }

    handler = command_handlers.get(args.command)
    if handler:
        try:
            handler(args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            print("\n❌ Operation cancelled by user")
            sys.exit(1)
        except Exception as e:
            ErrorHandler(logger).handle_error(e, f"Command {args.command} failed")
            print(f"❌ Command failed: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        logger.error(f"Unknown command: {args.command}")
        print(f"Unknown command: {args.command}", file=sys.stderr)
        sys.exit(1)


def cli_main():
    """Entry point for the CLI"""
    main()


if __name__ == "__main__":
    cli_main()
