"""Unmatch core library — local data store, progress rules, backup and restore.

Public API re-exports for convenient imports:
    from unmatch import LocalStore, gather_snapshot, import_data, ...
"""

# Errors
from unmatch.errors import (
    UnmatchError,
    EnvelopeError,
    StorageError,
    BackupFileError,
    InvalidBackupFileError,
    RestoreError,
)

# Workspace, clock & settings
from unmatch.workspace import (
    workspace_root,
    get_user_timezone,
    Clock,
    default_clock,
    settings_path,
    db_path,
    cache_dir,
    backup_path,
)
from unmatch.config import Settings, load_settings, save_settings, configure_logging

# Rules
from unmatch.rules import (
    RANK_START,
    RANK_CAP,
    RESISTS_PER_LEVEL,
    calculate_rank,
    is_day_success,
    calculate_streak,
    should_increment_resist,
    should_increment_spend_avoided,
)

# Store
from unmatch.store import LocalStore, delete_all_data

# Models
from unmatch.models import (
    UserProfile,
    UrgeEvent,
    DailyCheckin,
    ProgressRecord,
    ContentProgress,
    SubscriptionState,
    TableCounts,
    ExportEnvelope,
    RECORD_TYPES,
    TABLE_KEYS,
)

# Repositories
from unmatch.repositories import (
    TABLE_NAME_MAP,
    get_user_profile,
    create_user_profile,
    update_user_profile,
    create_urge_event,
    get_urge_events_by_date,
    count_successes_by_date,
    count_spend_avoided_by_date,
    get_urge_events_in_range,
    create_checkin,
    get_checkin_by_date,
    get_checkins_in_range,
    get_progress,
    get_latest_progress,
    upsert_progress,
    get_all_progress_dates,
    mark_content_completed,
    get_content_progress,
    is_content_completed,
    get_subscription,
    upsert_subscription,
)

# Progress pipeline
from unmatch.progress import (
    refresh_progress,
    log_urge_event,
    complete_content,
    submit_checkin,
    progress_summary,
)

# Backup & restore
from unmatch.export import APP_VERSION, gather_snapshot, write_envelope_to_file, write_snapshot_to_file
from unmatch.data_import import (
    read_import_file,
    validate_import_data,
    import_data,
    import_from_file,
)

__version__ = APP_VERSION
