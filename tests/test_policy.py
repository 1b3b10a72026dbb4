import logging

from linemend.errors import ErrorCategory
from linemend.policy import ErrorPolicy


def test_skips_log_at_info_and_failures_warn(caplog):
    policy = ErrorPolicy()
    with caplog.at_level(logging.INFO, logger="linemend.policy"):
        policy.handle_error(ErrorCategory.LOCKED_BLOCK, "Box 1: locked")
        policy.handle_error(ErrorCategory.APPLY_FAILURE, "Box 2: refused")

    levels = [(record.levelno, record.getMessage()) for record in caplog.records]
    assert levels == [
        (logging.INFO, "Skipped (LockedBlock): Box 1: locked"),
        (logging.WARNING, "ApplyFailure: Box 2: refused"),
    ]
    assert policy.breakdown() == {"LockedBlock": 1, "ApplyFailure": 1}


def test_repeated_failures_warn_once_and_success_resets():
    policy = ErrorPolicy()
    for _ in range(4):
        policy.handle_error(ErrorCategory.APPLY_FAILURE, "refused")
    assert policy.tracker.consecutive == 4
    assert policy._warned

    policy.record_success()
    assert policy.tracker.consecutive == 0
    assert len(policy.records) == 4


def test_only_block_level_categories_are_skips():
    assert ErrorCategory.TOO_SHORT.is_skip
    assert ErrorCategory.HIDDEN_BLOCK.is_skip
    assert not ErrorCategory.ANALYSIS_FAILURE.is_skip
    assert not ErrorCategory.BATCH_FAILURE.is_skip
