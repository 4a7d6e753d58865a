#!/usr/bin/env python3
"""
CLI for resource file backups.

Usage:
    lrm-backup create  Resources/Strings.resx [--operation edit]
    lrm-backup list    Strings.resx [--json]
    lrm-backup info    Strings.resx 3
    lrm-backup diff    Strings.resx 2 [3] [--current Resources/Strings.resx] [--format html --output diff.html]
    lrm-backup restore Strings.resx 2 --target Resources/Strings.resx [--keys Key1 Key2] [--preview] [--no-backup]
    lrm-backup prune   Strings.resx (--version 3 | --older-than 30 | --keep 10) [--dry-run]
    lrm-backup verify  Strings.resx [--version 3]
    lrm-backup pack    Strings.resx --out strings-backups.zip [--encrypt]
    lrm-backup unpack  --in strings-backups.zip [--force]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .backup.archive import BackupPacker, BackupUnpacker, get_encryption_key
from .backup.diff import DiffEngine
from .backup.diff_formatter import FORMATS, format_diff
from .backup.restore import RestoreEngine
from .backup.store import SnapshotStore
from .config import BackupConfig
from .core.exceptions import IntegrityMismatchError, LrmError
from .core.logging import configure_logging

logger = logging.getLogger(__name__)


def setup_logging(config: BackupConfig, verbose: bool = False) -> None:
    """Configure logging from config; --verbose forces DEBUG."""
    logging_config = config.get_logging_config()
    level_name = "DEBUG" if verbose else str(logging_config.get("level", "INFO")).upper()
    configure_logging(
        level=getattr(logging, level_name, logging.INFO),
        structured=bool(logging_config.get("structured", False)),
    )


def build_store(config: BackupConfig) -> SnapshotStore:
    return SnapshotStore(
        rotation_policy=config.get_rotation_policy(),
        lock_timeout=config.lock_timeout,
    )


def _backup_root(args, config: BackupConfig) -> Path:
    return Path(args.backup_dir) if args.backup_dir else config.backup_root


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_create(args, config: BackupConfig) -> int:
    """Back up a resource file."""
    store = build_store(config)
    record = store.create_backup(args.file, args.operation, _backup_root(args, config))
    print(f"Created backup v{record.version} of {Path(args.file).name} ({record.key_count} keys)")
    return 0


def cmd_list(args, config: BackupConfig) -> int:
    """List backups of a file, or all backed-up files."""
    store = build_store(config)
    backup_root = _backup_root(args, config)
    
    if not args.file_name:
        for name in store.list_backed_up_files(backup_root):
            print(name)
        return 0
    
    backups = store.list_backups(args.file_name, backup_root)
    if args.json:
        _print_json([b.to_dict() for b in backups])
        return 0
    
    if not backups:
        print(f"No backups found for {args.file_name}")
        return 0
    
    print(f"{'Version':>7}  {'Timestamp (UTC)':<19}  {'Operation':<14}  {'Keys':>6}  {'Changed':>7}  User")
    for b in backups:
        print(
            f"{b.version:>7}  {b.timestamp.strftime('%Y-%m-%d %H:%M:%S'):<19}  "
            f"{b.operation:<14}  {b.key_count:>6}  {b.changed_keys:>7}  {b.user}"
        )
    return 0


def cmd_info(args, config: BackupConfig) -> int:
    """Show one backup record."""
    store = build_store(config)
    record = store.require_backup(args.file_name, args.version, _backup_root(args, config))
    data = record.to_dict()
    data["path"] = str(store.payload_path(args.file_name, record, _backup_root(args, config)))
    _print_json(data)
    return 0


def cmd_diff(args, config: BackupConfig) -> int:
    """Diff two backups, or a backup against the live file."""
    store = build_store(config)
    backup_root = _backup_root(args, config)
    engine = DiffEngine(store.format_resolver)
    
    record_a = store.require_backup(args.file_name, args.version_a, backup_root)
    path_a = store.payload_path(args.file_name, record_a, backup_root)
    
    if args.version_b is not None:
        record_b = store.require_backup(args.file_name, args.version_b, backup_root)
        diff = engine.compare(
            record_a, record_b, path_a,
            store.payload_path(args.file_name, record_b, backup_root),
            include_unchanged=args.show_unchanged,
        )
    elif args.current:
        diff = engine.compare_with_current(
            record_a, path_a, args.current, include_unchanged=args.show_unchanged,
        )
    else:
        logger.error("Give a second version or --current PATH")
        return 1
    
    output = format_diff(diff, args.format)
    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Wrote {args.format} diff to {args.output}")
    else:
        print(output, end="")
    return 0


def cmd_restore(args, config: BackupConfig) -> int:
    """Restore a file, or selected keys, from a backup."""
    store = build_store(config)
    backup_root = _backup_root(args, config)
    engine = RestoreEngine(store, verify_integrity=bool(config.get("backup.verify_on_restore", True)))
    
    if args.preview:
        diff = engine.preview_restore(args.file_name, args.version, args.target, backup_root)
        print(format_diff(diff, "text"), end="")
        return 0
    
    validation = engine.validate_restore(args.file_name, args.version, args.target, backup_root)
    for warning in validation.warnings:
        logger.warning(warning)
    if not validation.is_valid:
        for error in validation.errors:
            logger.error(error)
        return 1
    
    pre_backup = bool(config.get("backup.create_backup_before_restore", True)) and not args.no_backup
    if args.keys:
        result = engine.restore_keys(
            args.file_name, args.version, args.keys, args.target, backup_root,
            create_backup_before_restore=pre_backup,
        )
        print(f"Restored {len(result.restored_keys)} keys from v{args.version}")
        if result.missing_keys:
            print(f"Not in backup: {', '.join(result.missing_keys)}")
    else:
        result = engine.restore(
            args.file_name, args.version, args.target, backup_root,
            create_backup_before_restore=pre_backup,
        )
        print(f"Restored {args.target} from v{args.version}")
    
    if result.pre_restore_backup:
        print(f"Previous content saved as v{result.pre_restore_backup.version}")
    return 0


def cmd_prune(args, config: BackupConfig) -> int:
    """Delete backups by version, age or count."""
    store = build_store(config)
    pruned = store.prune_backups(
        args.file_name,
        _backup_root(args, config),
        version=args.version,
        older_than_days=args.older_than,
        keep=args.keep,
        dry_run=args.dry_run,
    )
    
    verb = "Would delete" if args.dry_run else "Deleted"
    if not pruned:
        print("No backups to prune")
    for record in pruned:
        print(f"{verb} v{record.version} ({record.timestamp.strftime('%Y-%m-%d %H:%M:%S')}, {record.operation})")
    return 0


def cmd_verify(args, config: BackupConfig) -> int:
    """Check backup payloads against their recorded hashes."""
    store = build_store(config)
    backup_root = _backup_root(args, config)
    
    versions = [args.version] if args.version is not None else [
        b.version for b in store.list_backups(args.file_name, backup_root)
    ]
    
    failures = 0
    for version in versions:
        try:
            store.verify_backup(args.file_name, version, backup_root)
            print(f"v{version}: OK")
        except IntegrityMismatchError as e:
            failures += 1
            print(f"v{version}: HASH MISMATCH (expected {e.expected}, got {e.actual})")
    
    return 0 if failures == 0 else 1


def cmd_pack(args, config: BackupConfig) -> int:
    """Pack a file's backups into an archive."""
    encryption_key = None
    if args.encrypt:
        key_env_var = config.get("archive.key_env_var", "LRM_BACKUP_ENCRYPTION_KEY")
        encryption_key = get_encryption_key(key_source="env", key_env_var=key_env_var)
        if not encryption_key:
            logger.error(f"Encryption key not found. Set {key_env_var} env var.")
            return 1
    
    packer = BackupPacker(
        backup_root=_backup_root(args, config),
        file_name=args.file_name,
        encrypt=args.encrypt,
        encryption_key=encryption_key,
        lock_timeout=config.lock_timeout,
    )
    result_path = packer.pack(Path(args.out))
    print(f"Created archive: {result_path}")
    return 0


def cmd_unpack(args, config: BackupConfig) -> int:
    """Unpack a backup archive into the backup root."""
    archive_path = Path(args.input)
    
    decryption_key = None
    if archive_path.suffix == ".enc":
        key_env_var = config.get("archive.key_env_var", "LRM_BACKUP_ENCRYPTION_KEY")
        decryption_key = get_encryption_key(key_source="env", key_env_var=key_env_var)
        if not decryption_key:
            logger.error(f"Decryption key not found. Set {key_env_var} env var.")
            return 1
    
    unpacker = BackupUnpacker(archive_path, decryption_key=decryption_key, lock_timeout=config.lock_timeout)
    result_dir = unpacker.unpack(_backup_root(args, config), force=args.force)
    print(f"Unpacked to: {result_dir}")
    return 0


COMMANDS = {
    "create": cmd_create,
    "list": cmd_list,
    "info": cmd_info,
    "diff": cmd_diff,
    "restore": cmd_restore,
    "prune": cmd_prune,
    "verify": cmd_verify,
    "pack": cmd_pack,
    "unpack": cmd_unpack,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="lrm-backup",
        description="Versioned backups of localization resource files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose/debug logging")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--backup-dir", help="Backup root directory (overrides config)")
    
    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    
    # Create command
    create_parser = subparsers.add_parser("create", help="Back up a resource file")
    create_parser.add_argument("file", help="Resource file to back up")
    create_parser.add_argument("--operation", default="manual", help="Label for the backup (default: manual)")
    
    # List command
    list_parser = subparsers.add_parser("list", help="List backups")
    list_parser.add_argument("file_name", nargs="?", help="Resource file name (omit to list backed-up files)")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    
    # Info command
    info_parser = subparsers.add_parser("info", help="Show one backup")
    info_parser.add_argument("file_name", help="Resource file name")
    info_parser.add_argument("version", type=int, help="Backup version")
    
    # Diff command
    diff_parser = subparsers.add_parser("diff", help="Compare backups")
    diff_parser.add_argument("file_name", help="Resource file name")
    diff_parser.add_argument("version_a", type=int, help="Old version")
    diff_parser.add_argument("version_b", type=int, nargs="?", help="New version")
    diff_parser.add_argument("--current", help="Compare with this live file instead of a second version")
    diff_parser.add_argument("--format", choices=FORMATS, default="text", help="Output format")
    diff_parser.add_argument("--output", help="Write the diff to a file")
    diff_parser.add_argument("--show-unchanged", action="store_true", help="Include unchanged keys")
    
    # Restore command
    restore_parser = subparsers.add_parser("restore", help="Restore from a backup")
    restore_parser.add_argument("file_name", help="Resource file name")
    restore_parser.add_argument("version", type=int, help="Backup version")
    restore_parser.add_argument("--target", required=True, help="File to restore into")
    restore_parser.add_argument("--keys", nargs="+", help="Restore only these keys")
    restore_parser.add_argument("--preview", action="store_true", help="Show the diff without restoring")
    restore_parser.add_argument("--no-backup", action="store_true", help="Skip the pre-restore backup")
    
    # Prune command
    prune_parser = subparsers.add_parser("prune", help="Delete backups")
    prune_parser.add_argument("file_name", help="Resource file name")
    criteria = prune_parser.add_mutually_exclusive_group(required=True)
    criteria.add_argument("--version", type=int, help="Delete this version")
    criteria.add_argument("--older-than", type=int, metavar="DAYS", help="Delete backups older than DAYS")
    criteria.add_argument("--keep", type=int, help="Keep only the N most recent backups")
    prune_parser.add_argument("--dry-run", action="store_true", help="Report without deleting")
    
    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Check backup integrity")
    verify_parser.add_argument("file_name", help="Resource file name")
    verify_parser.add_argument("--version", type=int, help="Verify only this version")
    
    # Pack command
    pack_parser = subparsers.add_parser("pack", help="Pack a file's backups into an archive")
    pack_parser.add_argument("file_name", help="Resource file name")
    pack_parser.add_argument("--out", required=True, help="Output archive path")
    pack_parser.add_argument("--encrypt", action="store_true", help="Encrypt the archive")
    
    # Unpack command
    unpack_parser = subparsers.add_parser("unpack", help="Unpack a backup archive")
    unpack_parser.add_argument("--in", dest="input", required=True, help="Input archive path")
    unpack_parser.add_argument("--force", action="store_true", help="Overwrite existing backups")
    
    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    
    try:
        config = BackupConfig(args.config)
    except (FileNotFoundError, LrmError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1
    
    setup_logging(config, verbose=args.verbose)
    
    handler = COMMANDS.get(args.command)
    if handler is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1
    
    try:
        return handler(args, config)
    except (LrmError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
