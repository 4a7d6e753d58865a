"""
Tiered retention for resource backups.

Rotation keeps every backup younger than ``keep_all_for_hours``, then at
most one backup (the newest) per calendar day, ISO week and calendar month
inside the daily, weekly and monthly windows, and finally caps the total at
``max_total_backups``. Each tier's window ends where the previous tier's
begins. A tier set to 0 is disabled; with every tier disabled only the
cap applies.

The selection itself (``select_retained``) is a pure function of the
records and "now"; ``apply_rotation`` applies it to a manifest and deletes
the pruned payloads.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from ..core.exceptions import BackupStorageError, ConfigError
from .models import MANIFEST_FILE_NAME, BackupManifest, BackupRecord

logger = logging.getLogger(__name__)


def subtract_months(moment: datetime, months: int) -> datetime:
    """Go back ``months`` calendar months, clamping the day to the month's length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def iso_week_key(moment: datetime) -> str:
    """Bucket key for an ISO-8601 week, e.g. ``2025-W03``."""
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


@dataclass
class RotationPolicy:
    """
    Retention parameters for backup rotation.
    
    Attributes:
        keep_all_for_hours: Keep every backup younger than this
        keep_daily_for_days: Keep one backup per day within this many days
        keep_weekly_for_weeks: Keep one backup per ISO week within this many weeks
        keep_monthly_for_months: Keep one backup per month within this many months
        max_total_backups: Hard cap on surviving backups (clamped to at least 1)
    """
    keep_all_for_hours: int = 24
    keep_daily_for_days: int = 7
    keep_weekly_for_weeks: int = 4
    keep_monthly_for_months: int = 6
    max_total_backups: int = 100

    def __post_init__(self):
        for name in ("keep_all_for_hours", "keep_daily_for_days",
                     "keep_weekly_for_weeks", "keep_monthly_for_months"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

    @classmethod
    def default(cls) -> "RotationPolicy":
        return cls()

    @classmethod
    def minimal(cls) -> "RotationPolicy":
        """Keep less history."""
        return cls(
            keep_all_for_hours=6,
            keep_daily_for_days=3,
            keep_weekly_for_weeks=2,
            keep_monthly_for_months=2,
            max_total_backups=20,
        )

    @classmethod
    def aggressive(cls) -> "RotationPolicy":
        """Keep more history."""
        return cls(
            keep_all_for_hours=48,
            keep_daily_for_days=14,
            keep_weekly_for_weeks=8,
            keep_monthly_for_months=12,
            max_total_backups=200,
        )

    @classmethod
    def from_preset(cls, name: str) -> "RotationPolicy":
        presets = {
            "default": cls.default,
            "minimal": cls.minimal,
            "aggressive": cls.aggressive,
        }
        try:
            return presets[name.lower()]()
        except KeyError:
            raise ConfigError(
                f"Unknown rotation preset '{name}' (expected one of: {', '.join(presets)})"
            )

    @property
    def any_tier_enabled(self) -> bool:
        return any((
            self.keep_all_for_hours,
            self.keep_daily_for_days,
            self.keep_weekly_for_weeks,
            self.keep_monthly_for_months,
        ))

    @property
    def effective_max_total(self) -> int:
        # A cap below 1 would delete the newest backup; clamp instead.
        return max(1, self.max_total_backups)

    def to_dict(self) -> Dict[str, int]:
        return {
            "keep_all_for_hours": self.keep_all_for_hours,
            "keep_daily_for_days": self.keep_daily_for_days,
            "keep_weekly_for_weeks": self.keep_weekly_for_weeks,
            "keep_monthly_for_months": self.keep_monthly_for_months,
            "max_total_backups": self.max_total_backups,
        }


def _keep_one_per_bucket(
    records: List[BackupRecord],
    start: datetime,
    end: datetime,
    bucket_key,
    keep: Set[int],
) -> None:
    """Keep the newest record of each bucket among records in [start, end)."""
    seen: Set[str] = set()
    for record in records:
        if start <= record.timestamp < end:
            key = bucket_key(record.timestamp)
            if key not in seen:
                seen.add(key)
                keep.add(record.version)


def select_retained(
    records: Iterable[BackupRecord],
    policy: RotationPolicy,
    now: Optional[datetime] = None,
) -> Set[int]:
    """
    Decide which backups survive rotation.
    
    Args:
        records: Backup records of one file
        policy: Retention parameters
        now: Reference time (default: current UTC time)
        
    Returns:
        Set of versions to keep. Never empty for a non-empty input: the
        most recent backup (highest version) always survives.
    """
    now = now or datetime.now(timezone.utc)
    # Newest first; version breaks timestamp ties.
    ordered = sorted(records, key=lambda r: (r.timestamp, r.version), reverse=True)
    if not ordered:
        return set()
    
    keep: Set[int] = set()
    
    if not policy.any_tier_enabled:
        keep = {r.version for r in ordered}
    
    recent_cutoff = now - timedelta(hours=policy.keep_all_for_hours)
    daily_cutoff = now - timedelta(days=policy.keep_daily_for_days)
    weekly_cutoff = now - timedelta(weeks=policy.keep_weekly_for_weeks)
    monthly_cutoff = subtract_months(now, policy.keep_monthly_for_months)
    
    if policy.keep_all_for_hours > 0:
        for record in ordered:
            if record.timestamp >= recent_cutoff:
                keep.add(record.version)
    
    if policy.keep_daily_for_days > 0:
        _keep_one_per_bucket(
            ordered, daily_cutoff, recent_cutoff,
            lambda ts: ts.strftime("%Y-%m-%d"), keep,
        )
    
    if policy.keep_weekly_for_weeks > 0:
        _keep_one_per_bucket(ordered, weekly_cutoff, daily_cutoff, iso_week_key, keep)
    
    if policy.keep_monthly_for_months > 0:
        _keep_one_per_bucket(
            ordered, monthly_cutoff, weekly_cutoff,
            lambda ts: ts.strftime("%Y-%m"), keep,
        )
    
    newest = max(ordered, key=lambda r: r.version)
    keep.add(newest.version)
    
    cap = policy.effective_max_total
    if len(keep) > cap:
        survivors = [r for r in ordered if r.version in keep]
        survivors.sort(key=lambda r: r.version, reverse=True)
        keep = {r.version for r in survivors[:cap]}
    
    return keep


def plan_rotation(
    manifest: BackupManifest,
    policy: RotationPolicy,
    now: Optional[datetime] = None,
) -> List[BackupRecord]:
    """
    Remove the records rotation drops from ``manifest`` and return them.
    
    Only the in-memory manifest changes; the caller persists it and then
    deletes the payloads of the returned records.
    """
    if not manifest.backups:
        return []
    
    retained = select_retained(manifest.backups, policy, now=now)
    removed = [b for b in manifest.backups if b.version not in retained]
    for record in removed:
        manifest.remove(record.version)
    
    if removed:
        logger.info(
            f"Rotation keeps {len(retained)} of {len(retained) + len(removed)} backups "
            f"for {manifest.file_name}; pruning versions {sorted(r.version for r in removed)}"
        )
    return removed


def delete_payloads(backup_dir: Path, records: Iterable[BackupRecord]) -> None:
    """Delete the payload files of ``records`` from ``backup_dir``."""
    for record in records:
        payload = Path(backup_dir) / record.stored_file_name
        try:
            payload.unlink()
        except FileNotFoundError:
            logger.debug(f"Payload already gone: {payload}")
        except OSError as e:
            raise BackupStorageError(f"Failed to delete payload {payload}: {e}", path=str(payload)) from e


def apply_rotation(
    manifest: BackupManifest,
    backup_dir: Path,
    policy: RotationPolicy,
    now: Optional[datetime] = None,
) -> List[BackupRecord]:
    """
    Rotate one file's backups: prune the manifest, persist it, delete payloads.
    
    The manifest is saved before any payload is deleted, so a crash midway
    leaves at worst an orphaned payload file, never a manifest entry
    without its payload. The caller must hold the file's ``BackupLock``.
    
    Returns:
        The removed records
    """
    removed = plan_rotation(manifest, policy, now=now)
    if removed:
        manifest.save(Path(backup_dir) / MANIFEST_FILE_NAME)
        delete_payloads(backup_dir, removed)
    return removed
