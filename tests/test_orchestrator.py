import asyncio

import pytest

from linemend.errors import BatchFailure, ErrorCategory
from linemend.fonts import FontManager
from linemend.orchestrator import BatchOrchestrator, OrchestratorState
from linemend.structures import (
    AnalysisResult,
    BatchJob,
    DetectionType,
    Issue,
    ProcessingConfig,
    ProcessingOptions,
    ResizeMode,
)

from conftest import MemoryBlockHandle

SOFT_TEXT = "A\u2028B\u2028C"
SOFT_ISSUE = Issue(kind=DetectionType.SOFT_BREAK, confidence=0.8, occurrences=2)
CONFIG = ProcessingConfig(min_characters=0, line_break_threshold=0.9)


def flagged(block, issues=(SOFT_ISSUE,)):
    return AnalysisResult(
        block=block,
        issues=list(issues),
        estimated_changes="",
        original_text=block.content,
    )


def test_missing_font_is_reported_and_others_succeed(make_block):
    blocks = [
        make_block(SOFT_TEXT, block_id=f"b{n}", has_missing_font=(n == 2))
        for n in range(5)
    ]
    orchestrator = BatchOrchestrator(CONFIG)

    results = asyncio.run(orchestrator.process([flagged(block) for block in blocks]))

    assert len(results) == 5
    assert results[0].block is blocks[2]
    assert results[0].error is ErrorCategory.MISSING_FONT
    assert [result.block.block_id for result in results[1:]] == ["b0", "b1", "b3", "b4"]
    assert all(result.success for result in results[1:])
    assert blocks[0].content == "A\nB\nC"
    assert blocks[2].content == SOFT_TEXT

    stats = orchestrator.statistics(results)
    assert (stats.total, stats.successful, stats.failed) == (5, 4, 1)
    assert stats.error_summary == {"MissingFont": 1}


def test_analysis_keeps_input_order_and_reports_progress(make_block):
    blocks = [make_block(SOFT_TEXT, block_id=f"b{n}", name=f"Box {n}") for n in range(3)]
    orchestrator = BatchOrchestrator(CONFIG, analysis_chunk_size=2)
    updates = []

    results = asyncio.run(orchestrator.analyze(BatchJob(blocks=blocks), updates.append))

    assert [result.block for result in results] == blocks
    assert [update.current for update in updates] == [1, 2, 3]
    assert updates[-1].progress == 100
    assert updates[0].message == "Analyzing: Box 0"
    assert orchestrator.state is OrchestratorState.IDLE


def test_analysis_failure_is_recorded_per_block(make_block, monkeypatch):
    blocks = [make_block(SOFT_TEXT, block_id=name) for name in ("ok", "bad", "also-ok")]
    orchestrator = BatchOrchestrator(CONFIG)
    original = orchestrator.detector.analyze

    def analyze(block):
        if block.block_id == "bad":
            raise ValueError("boom")
        return original(block)

    monkeypatch.setattr(orchestrator.detector, "analyze", analyze)
    results = asyncio.run(orchestrator.analyze(BatchJob(blocks=blocks)))

    assert len(results) == 3
    assert results[1].error is ErrorCategory.ANALYSIS_FAILURE
    assert results[1].estimated_changes == "Analysis error: boom"
    assert results[1].issues == []
    assert results[2].has_issues
    assert orchestrator.error_policy.breakdown() == {"AnalysisFailure": 1}


def test_apply_failure_does_not_stop_the_batch(make_block):
    broken = make_block(SOFT_TEXT, block_id="broken")
    broken.handle = MemoryBlockHandle(broken, fail_on_content=True)
    fine = make_block(SOFT_TEXT, block_id="fine")
    orchestrator = BatchOrchestrator(CONFIG)

    results = asyncio.run(orchestrator.process([flagged(broken), flagged(fine)]))

    assert results[0].error is ErrorCategory.APPLY_FAILURE
    assert "host refused the edit" in results[0].message
    assert results[1].success
    assert orchestrator.statistics(results).error_summary == {"ApplyFailure": 1}


def test_resize_mode_is_set_before_content(make_block):
    block = make_block(
        "あ" * 23 + "\n" + "い" * 5, resize_mode=ResizeMode.AUTO_WIDTH_AND_HEIGHT
    )
    issue = Issue(kind=DetectionType.AUTO_WIDTH, confidence=0.9)
    asyncio.run(BatchOrchestrator(CONFIG).process([flagged(block, [issue])]))

    assert block.handle.calls == ["resize", "content"]
    assert block.resize_mode is ResizeMode.AUTO_HEIGHT


def test_unchanged_blocks_succeed_without_touching_the_host(make_block):
    block = make_block("Hello.\nWorld")
    issue = Issue(kind=DetectionType.EDGE_BREAK, confidence=0.75)
    results = asyncio.run(BatchOrchestrator(CONFIG).process([flagged(block, [issue])]))

    assert results[0].success
    assert results[0].changes.is_empty
    assert block.handle.calls == []


def test_blocks_without_issues_are_not_processed(make_block):
    clean = make_block("clean", block_id="clean")
    results = asyncio.run(BatchOrchestrator(CONFIG).process([flagged(clean, [])]))
    assert results == []


def test_each_font_is_loaded_once(make_block):
    loaded = []

    async def loader(name):
        loaded.append(name)

    blocks = [
        make_block(SOFT_TEXT, block_id="one", font_names=("Arial", "Meiryo")),
        make_block(SOFT_TEXT, block_id="two", font_names=("Arial",)),
    ]
    orchestrator = BatchOrchestrator(CONFIG, font_manager=FontManager(loader))
    asyncio.run(orchestrator.process([flagged(block) for block in blocks]))

    assert loaded == ["Arial", "Meiryo"]


def test_font_loading_failure_is_an_apply_failure(make_block):
    async def loader(name):
        raise OSError("font server unavailable")

    block = make_block(SOFT_TEXT, font_names=("Arial",))
    orchestrator = BatchOrchestrator(CONFIG, font_manager=FontManager(loader))
    results = asyncio.run(orchestrator.process([flagged(block)]))

    assert results[0].error is ErrorCategory.APPLY_FAILURE
    assert block.content == SOFT_TEXT


def test_cancel_keeps_results_produced_so_far(make_block):
    blocks = [make_block(SOFT_TEXT, block_id=f"b{n}") for n in range(3)]
    orchestrator = BatchOrchestrator(CONFIG)

    def on_progress(update):
        orchestrator.cancel()

    results = asyncio.run(orchestrator.analyze(BatchJob(blocks=blocks), on_progress))

    assert len(results) == 1
    assert orchestrator.state is OrchestratorState.CANCELLED
    assert not orchestrator.is_running


def test_process_selected_applies_manual_options(make_block):
    block = make_block(SOFT_TEXT)
    options = ProcessingOptions(remove_breaks=False, convert_soft_breaks=True)
    results = asyncio.run(BatchOrchestrator(CONFIG).process_selected([block], options))

    assert results[0].success
    assert block.content == "A\nB\nC"


def test_malformed_input_raises_batch_failure():
    orchestrator = BatchOrchestrator(CONFIG)
    with pytest.raises(BatchFailure):
        asyncio.run(orchestrator.process(["not a result"]))
    with pytest.raises(BatchFailure):
        asyncio.run(orchestrator.analyze(BatchJob(blocks=["not a block"])))
    assert orchestrator.state is OrchestratorState.IDLE
    assert orchestrator.error_policy.breakdown() == {"BatchFailure": 2}
