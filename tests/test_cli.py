import pathlib

import pytest
from pptx import Presentation
from pptx.enum.text import MSO_AUTO_SIZE
from pptx.util import Inches

from linemend.cli import (
    apply_overrides,
    build_parser,
    check_selection_flags,
    derive_output_path,
    execute_cleanup,
    options_from_args,
)
from linemend.errors import ConfigurationError, OverwriteRefusedError
from linemend.runner import CleanupRunner, validate_paths
from linemend.structures import ProcessingConfig, ProcessingOptions

CONFIG = ProcessingConfig(min_characters=0)


def write_deck(path: pathlib.Path) -> pathlib.Path:
    presentation = Presentation()
    slide = presentation.slides.add_slide(presentation.slide_layouts[6])
    box = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(2))
    box.text_frame.word_wrap = True
    box.text_frame.auto_size = MSO_AUTO_SIZE.NONE
    paragraph = box.text_frame.paragraphs[0]
    paragraph.add_run().text = "A"
    paragraph.add_line_break()
    paragraph.add_run().text = "B"
    paragraph.add_line_break()
    paragraph.add_run().text = "C"
    presentation.save(str(path))
    return path


def run_cleanup(deck, **overrides):
    settings = dict(
        input_file=str(deck),
        output_file=None,
        config=CONFIG,
        fonts=[],
        store=None,
        apply=False,
        selected_ids=[],
        options=ProcessingOptions(),
        force_overwrite=False,
        verbose=False,
    )
    settings.update(overrides)
    return execute_cleanup(**settings)


def test_derive_output_path():
    assert derive_output_path(pathlib.Path("/tmp/deck.pptx")) == pathlib.Path(
        "/tmp/deck_cleaned.pptx"
    )


def test_parser_collects_selection_and_soft_breaks():
    args = build_parser().parse_args(
        ["deck.pptx", "--select", "slide1/shape2", "--select", "slide2/shape5",
         "--soft-break", "U+2028", "--threshold", "0.7", "--strict"]
    )
    assert args.select == ["slide1/shape2", "slide2/shape5"]
    config = apply_overrides(ProcessingConfig(), args)
    assert config.soft_break_chars == ("\u2028",)
    assert config.line_break_threshold == 0.7
    assert config.strict_join is True


def test_invalid_threshold_is_a_configuration_error():
    args = build_parser().parse_args(["deck.pptx", "--threshold", "0"])
    with pytest.raises(ConfigurationError):
        apply_overrides(ProcessingConfig(), args)


def test_manual_options_default_to_removing_breaks():
    parser = build_parser()
    assert options_from_args(parser.parse_args(["deck.pptx"])).remove_breaks
    converted = options_from_args(parser.parse_args(["deck.pptx", "--convert-soft-breaks"]))
    assert converted.convert_soft_breaks and not converted.remove_breaks


@pytest.mark.parametrize(
    "flags",
    [
        ["--auto-height"],
        ["--convert-soft-breaks"],
        ["--apply", "--select", "slide1/shape2"],
    ],
)
def test_selection_flags_are_checked(flags):
    parser = build_parser()
    with pytest.raises(SystemExit):
        check_selection_flags(parser, parser.parse_args(["deck.pptx", *flags]))


def test_auto_height_with_selection_is_accepted():
    parser = build_parser()
    args = parser.parse_args(["deck.pptx", "--select", "slide1/shape2", "--auto-height"])
    check_selection_flags(parser, args)
    assert options_from_args(args).convert_to_auto_height


def test_validate_paths(tmp_path):
    deck = write_deck(tmp_path / "deck.pptx")
    with pytest.raises(FileNotFoundError):
        validate_paths(tmp_path / "absent.pptx", None, force_overwrite=False)
    with pytest.raises(OverwriteRefusedError):
        validate_paths(deck, deck, force_overwrite=True)
    existing = tmp_path / "existing.pptx"
    existing.write_bytes(b"")
    with pytest.raises(OverwriteRefusedError):
        validate_paths(deck, existing, force_overwrite=False)
    validate_paths(deck, existing, force_overwrite=True)


def test_scan_only_does_not_write_output(tmp_path):
    deck = write_deck(tmp_path / "deck.pptx")
    code, summary, message = run_cleanup(deck)

    assert (code, message) == (0, None)
    assert summary.flagged_blocks == 1
    assert not summary.saved
    assert not (tmp_path / "deck_cleaned.pptx").exists()


def test_apply_writes_cleaned_copy(tmp_path):
    deck = write_deck(tmp_path / "deck.pptx")
    code, summary, message = run_cleanup(deck, apply=True)

    assert code == 0, message
    assert summary.statistics.successful == 1
    output = tmp_path / "deck_cleaned.pptx"
    assert summary.output_path == output
    reloaded = Presentation(str(output))
    (shape,) = reloaded.slides[0].shapes
    assert [p.text for p in shape.text_frame.paragraphs] == ["A", "B", "C"]


def test_selected_blocks_are_processed_directly(tmp_path):
    deck = write_deck(tmp_path / "deck.pptx")
    (shape,) = Presentation(str(deck)).slides[0].shapes
    runner = CleanupRunner(
        input_path=deck,
        output_path=tmp_path / "out.pptx",
        config=CONFIG,
        selected_ids=[f"slide1/shape{shape.shape_id}"],
        options=ProcessingOptions(remove_breaks=False, convert_soft_breaks=True),
    )

    summary = runner.run()

    assert summary.saved
    assert summary.statistics.total == 1
    assert summary.analysis == []


def test_unsupported_input_is_reported(tmp_path):
    notes = tmp_path / "notes.docx"
    notes.write_bytes(b"")
    code, summary, message = run_cleanup(notes)
    assert code == 1
    assert summary is None
    assert ".pptx" in message
