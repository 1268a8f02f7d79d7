import dataclasses
import re

from conftest import image_bytes, write
from vault_publish.config import ExportConfig
from vault_publish.markdown_processing import find_embeds
from vault_publish.pipeline import Exporter, run_export
from vault_publish.policy import decide
from vault_publish.providers import FilesystemProvider

LINK = re.compile(r"!\[(?P<alt>[^\]]*)\]\(/image/(?P<file>[^)]+)\)")


def test_end_to_end_filesystem_export(export_config, capsys):
    stats = run_export(export_config)

    content = export_config.content_dir
    images = export_config.image_dir
    assert sorted(p.name for p in content.iterdir()) == ["hello-world.md", "wo-de-bi-ji.md"]
    assert sorted(p.name for p in images.iterdir()) == ["diagram.svg", "photo.webp", "pic-one.webp"]

    note = (content / "wo-de-bi-ji.md").read_text(encoding="utf-8")
    assert "![photo.png](/image/photo.webp)" in note
    assert "![diagram.svg](/image/diagram.svg)" in note
    assert "![Pic One.webp](/image/pic-one.webp)" in note
    assert "![weird.xyz](/image/weird.xyz)" in note
    assert "[ordinary](https://example.com) ![alt](local.png)" in note

    # notes without embeds are byte-identical
    assert (content / "hello-world.md").read_bytes() == b"plain text\r\nno embeds\n"

    assert stats.notes_attempted == stats.notes_written == 2
    assert stats.attachments_attempted == 4
    assert stats.attachments_written == 3
    assert stats.attachments_skipped == 1
    assert stats.failed == 0
    assert stats.dangling == [("Blog/我的笔记.md", "weird.xyz")]

    out = capsys.readouterr().out
    assert "unknown format" in out
    assert "= notes 2/2 written" in out


def test_every_link_names_a_written_file_except_skipped(export_config):
    run_export(export_config)
    written = {p.name for p in export_config.image_dir.iterdir()}
    for note in export_config.content_dir.iterdir():
        for m in LINK.finditer(note.read_text(encoding="utf-8")):
            ext = m.group("alt").rsplit(".", 1)[-1]
            if decide(ext).skipped:
                assert m.group("file") not in written
            else:
                assert m.group("file") in written
                assert m.group("file").endswith("." + decide(ext).output_extension)


def test_per_file_failures_do_not_stop_the_batch(export_config, vault, capsys):
    write(vault / "Attachment" / "broken.png", b"not really a png")
    write(vault / "Blog" / "latin1.md", "caf\xe9".encode("latin-1"))

    stats = run_export(export_config)

    assert stats.attachments_attempted == 5
    assert stats.attachments_failed == 1
    assert stats.notes_attempted == 3
    assert stats.notes_failed == 1
    assert stats.notes_written == 2
    assert {path for path, _ in stats.failures} == {"Attachment/broken.png", "Blog/latin1.md"}
    assert not (export_config.image_dir / "broken.webp").exists()
    assert not (export_config.content_dir / "latin1.md").exists()
    assert "! failed Attachment/broken.png" in capsys.readouterr().err


def test_colliding_output_names_keep_the_first_source(export_config, vault):
    write(vault / "Attachment" / "Photo!.jpg", image_bytes("JPEG"))
    write(vault / "Blog" / "hello world.md", "second")

    stats = run_export(export_config)

    assert stats.attachments_failed == 1
    assert stats.notes_failed == 1
    failed = dict(stats.failures)
    assert "already produced by" in failed["Attachment/photo.png"]
    assert "Blog/hello world.md" in failed["Blog/nested/Hello World!.md"]
    assert (export_config.content_dir / "hello-world.md").read_bytes() == b"second"


def test_output_dirs_cleared_unless_disabled(export_config):
    export_config.content_dir.mkdir(parents=True)
    stale = export_config.content_dir / "stale.md"
    stale.write_text("old", encoding="utf-8")

    run_export(dataclasses.replace(export_config, clean=False))
    assert stale.exists()

    run_export(export_config)
    assert not stale.exists()


def test_parallel_run_matches_sequential(export_config, tmp_path):
    sequential = run_export(export_config)
    seq_files = {p.name: p.read_bytes() for p in export_config.content_dir.iterdir()}

    parallel_cfg = dataclasses.replace(
        export_config,
        workers=4,
        content_dir=tmp_path / "par" / "content",
        image_dir=tmp_path / "par" / "image",
    )
    parallel = run_export(parallel_cfg)

    assert {p.name: p.read_bytes() for p in parallel_cfg.content_dir.iterdir()} == seq_files
    assert sorted(p.name for p in parallel_cfg.image_dir.iterdir()) == sorted(
        p.name for p in export_config.image_dir.iterdir()
    )
    assert parallel.summary() == sequential.summary()


def test_sanitize_strategy_and_injected_provider(export_config, vault):
    cfg = dataclasses.replace(export_config, naming="sanitize", url_prefix="/assets")
    provider = FilesystemProvider(vault, "Blog", "Attachment")
    stats = Exporter(cfg, provider).run()

    # "我的笔记" has no ASCII content left after sanitizing
    assert (cfg.content_dir / "untitled.md").exists()
    note = (cfg.content_dir / "untitled.md").read_text(encoding="utf-8")
    assert "![photo.png](/assets/photo.webp)" in note
    assert len(find_embeds(note)) == 0
    assert stats.notes_written == 2


def test_unlisted_extensions_are_reported_with_default_settings(tmp_path, vault, capsys):
    write(vault / "Attachment" / "scan.tiff", image_bytes("TIFF"))
    cfg = ExportConfig(
        vault_dir=vault,
        content_dir=tmp_path / "out" / "content",
        image_dir=tmp_path / "out" / "image",
    )
    assert "xyz" not in cfg.attachment_extensions

    stats = run_export(cfg)

    assert stats.attachments_attempted == 5
    assert stats.attachments_written == 3
    assert stats.attachments_skipped == 2
    assert not (cfg.image_dir / "weird.xyz").exists()
    assert not (cfg.image_dir / "scan.webp").exists()
    note = (cfg.content_dir / "wo-de-bi-ji.md").read_text(encoding="utf-8")
    assert "![weird.xyz](/image/weird.xyz)" in note
    out = capsys.readouterr().out
    assert "- unknown format: Attachment/weird.xyz, skipping" in out
    assert "- unknown format: Attachment/scan.tiff, skipping" in out

    listed = dataclasses.replace(cfg, attachment_extensions=cfg.attachment_extensions + ("tiff",))
    assert run_export(listed).attachments_written == 4
    assert (cfg.image_dir / "scan.webp").exists()


def test_nameless_attachment_warns_once(export_config, vault, capsys):
    write(vault / "Attachment" / "!!!.png", image_bytes("PNG"))
    write(vault / "Blog" / "gallery.md", "![[!!!.png]] ![[Attachment/!!!.png]]\n")

    stats = run_export(export_config)

    assert (export_config.image_dir / "asset.webp").exists()
    note = (export_config.content_dir / "gallery.md").read_text(encoding="utf-8")
    assert note.count("(/image/asset.webp)") == 2
    assert ("Blog/gallery.md", "asset.webp") not in stats.dangling
    assert capsys.readouterr().out.count("has no usable name") == 1


def test_preserved_code_embeds_are_not_dangling(export_config, vault):
    write(vault / "Blog" / "howto.md", "Write it as:\n```\n![[missing.png]]\n```\n![[gone.png]]\n")

    kept = run_export(dataclasses.replace(export_config, preserve_code=True))
    howto = [name for path, name in kept.dangling if path == "Blog/howto.md"]
    assert howto == ["gone.webp"]

    rewritten = run_export(export_config)
    howto = [name for path, name in rewritten.dangling if path == "Blog/howto.md"]
    assert howto == ["missing.webp", "gone.webp"]
