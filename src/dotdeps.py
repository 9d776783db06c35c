"""dotdeps - dependency source code, on disk, for reading.

    Returns:
        int: Exit code
"""
import json
import logging
import os
import sys
from pathlib import Path

from args import parse_args
from constants import ExitCodes
from common.config import apply_runtime_settings, load_config
from common.errors import DotDepsError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from pipeline import DotDeps
from versioning.parser import parse_dependency_ref

logger = logging.getLogger(__name__)


def _display(path: Path, base: Path) -> str:
    try:
        return os.path.relpath(path, base)
    except ValueError:
        return str(path)


def _print_json(value):
    print(json.dumps(value, ensure_ascii=False))


def _error_payload(token, e):
    return {"ref": token, "error": e.message, "code": e.code}


def _add_payload(app, result):
    ref = result.ref
    payload = {"ecosystem": ref.ecosystem.value, "package": ref.package_name}
    if result.is_local:
        payload.update(skipped=True, reason="local_path")
        if result.resolved.path:
            payload["path"] = result.resolved.path
    else:
        payload.update(
            version=result.version,
            path=_display(result.link_path, app.project_root),
            cached=result.from_cache,
        )
        if result.fetched_ref:
            payload["cloned_ref"] = result.fetched_ref
        if result.used_default_branch:
            payload["warning"] = "no tag matched the version; the default branch was cloned"
    if result.dry_run:
        payload["dry_run"] = True
    return payload


def run_add(app, refs, as_json=False, dry_run=False):
    """Add each reference; returns the exit code of the last failure or SUCCESS."""
    code = ExitCodes.SUCCESS
    for token in refs:
        try:
            ref = parse_dependency_ref(token)
            result = app.add(ref, dry_run=dry_run)
        except DotDepsError as e:
            logger.error("%s", e.message)
            code = e.exit_code
            if as_json:
                _print_json(_error_payload(token, e))
            continue
        if as_json:
            _print_json(_add_payload(app, result))
        elif result.is_local:
            print(f"{ref} is a local dependency; nothing to fetch")
        elif dry_run:
            action = "Using cached" if result.from_cache else "Fetching"
            link = _display(result.link_path, app.project_root)
            print(f"{action} {ref.package_name} {result.version} -> {link} (dry run)")
        else:
            suffix = " (default branch)" if result.used_default_branch else ""
            print(f"{ref} {result.version}{suffix} -> {_display(result.link_path, app.project_root)}")
    return code


def run_remove(app, refs, as_json=False, dry_run=False):
    """Remove each reference's link."""
    code = ExitCodes.SUCCESS
    for token in refs:
        try:
            ref = parse_dependency_ref(token)
        except DotDepsError as e:
            logger.error("%s", e.message)
            code = e.exit_code
            if as_json:
                _print_json(_error_payload(token, e))
            continue
        removed = app.remove(ref, dry_run=dry_run)
        if as_json:
            payload = {"ecosystem": ref.ecosystem.value, "package": ref.package_name, "removed": removed}
            if dry_run:
                payload["dry_run"] = True
            _print_json(payload)
        elif not removed:
            print(f"{ref} was not linked")
        elif dry_run:
            print(f"Would remove {ref}")
        else:
            print(f"Removed {ref}")
    return code


def run_list(app, as_json=False):
    """Print one line per linked dependency."""
    entries = app.list()
    if as_json:
        dependencies = []
        for entry in entries:
            item = {"ecosystem": entry.ecosystem, "package": entry.package, "version": entry.version}
            if entry.is_broken:
                item["broken"] = True
            if entry.is_copy:
                item["copy"] = True
            dependencies.append(item)
        _print_json({"dependencies": dependencies})
        return ExitCodes.SUCCESS
    if not entries:
        print(f"No dependencies in {_display(app.links.root, app.project_root)}/")
    for entry in entries:
        flags = []
        if entry.is_broken:
            flags.append("broken")
        if entry.is_copy:
            flags.append("copy")
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"{entry.ref} {entry.version}{suffix}")
    return ExitCodes.SUCCESS


def run_clean(app, as_json=False, dry_run=False):
    """Remove the link directory."""
    cleaned = app.clean(dry_run=dry_run)
    if as_json:
        payload = {"cleaned": cleaned}
        if dry_run:
            payload["dry_run"] = True
        _print_json(payload)
    elif not cleaned:
        print("Nothing to clean")
    elif dry_run:
        print(f"Would remove {_display(app.links.root, app.project_root)}")
    else:
        print(f"Removed {_display(app.links.root, app.project_root)}")
    return ExitCodes.SUCCESS


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)

    try:
        settings = load_config(args.CONFIG)
    except DotDepsError as e:
        logger.error("%s", e.message)
        sys.exit(e.exit_code.value)
    apply_runtime_settings(settings)

    if is_debug_enabled(logger):
        logger.debug(
            "Starting dotdeps",
            extra=extra_context(
                event="start",
                component="cli",
                action=args.command,
                config=settings.config_path,
                cwd=str(Path.cwd()),
            )
        )

    app = DotDeps(settings, project_root=Path.cwd())
    try:
        if args.command == "add":
            code = run_add(app, args.refs, args.JSON, args.DRY_RUN)
        elif args.command == "remove":
            code = run_remove(app, args.refs, args.JSON, args.DRY_RUN)
        elif args.command == "list":
            code = run_list(app, args.JSON)
        else:
            code = run_clean(app, args.JSON, args.DRY_RUN)
    except DotDepsError as e:
        logger.error("%s", e.message)
        code = e.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted")
        code = ExitCodes.FILE_ERROR
    sys.exit(code.value)


if __name__ == "__main__":
    main()
