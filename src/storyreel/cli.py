"""CLI entry point for the storyboard video tool."""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
import yaml

from . import __version__
from .config import config
from .errors import StoryreelError
from .models import JobStatus, RenderJob, Scene, SceneKind, Storyboard, StoryboardStore

app = typer.Typer(
    name="storyreel",
    help="Storyboard editor and narrated video renderer",
    no_args_is_help=True
)


def _storyboard_option():
    return typer.Option(
        Path("storyboard.yaml"),
        "--storyboard",
        "-b",
        help="Path to storyboard YAML file",
        file_okay=True,
        dir_okay=False
    )


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"storyreel version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """Storyreel - Edit storyboards and render narrated videos."""
    pass


def _load(path: Path) -> StoryboardStore:
    if not path.exists():
        typer.echo(f"❌ No storyboard found at {path}")
        raise typer.Exit(1)
    return StoryboardStore(path)


def _load_storyboard(store: StoryboardStore) -> Storyboard:
    try:
        return store.load()
    except Exception as e:
        typer.echo(f"❌ Error loading storyboard: {e}")
        raise typer.Exit(1)


def _print_scenes(storyboard: Storyboard) -> None:
    for s_idx, section in enumerate(storyboard.sections):
        typer.echo(f"\n📂 [{s_idx}] {section.label}")
        for scene in section.scenes:
            ready = "✅" if scene.clip_id and scene.wants_narration else "⏳"
            title = scene.title or "Untitled"
            typer.echo(f"   {ready} {scene.id}: {title} ({scene.kind.value})")
            if scene.script:
                script_preview = scene.script[:60] + "..." if len(scene.script) > 60 else scene.script
                typer.echo(f"      🎙  {script_preview} [{scene.voice_id or 'no voice'}]")
            if scene.clip_id:
                typer.echo(f"      🎞  {scene.clip_id}")


@app.command()
def status(
    storyboard_path: Path = _storyboard_option(),
) -> None:
    """Show storyboard status."""
    storyboard = _load_storyboard(_load(storyboard_path))

    scenes = storyboard.flatten()
    typer.echo(f"📁 Storyboard: {storyboard.title}")
    typer.echo(f"   Status: {storyboard.status.value}")
    typer.echo(f"   Sections: {len(storyboard.sections)}")
    typer.echo(f"   Scenes: {len(scenes)}")
    if storyboard.music_id:
        typer.echo(f"   Music: {storyboard.music_id}")
    if storyboard.final_video_url:
        typer.echo(f"   Last render: {storyboard.final_video_url}")
        if storyboard.last_generated_at:
            typer.echo(f"   Rendered at: {storyboard.last_generated_at:%Y-%m-%d %H:%M:%S}")

    _print_scenes(storyboard)


@app.command("add-scene")
def add_scene(
    section: int = typer.Option(0, "--section", "-s", help="Section index"),
    position: Optional[int] = typer.Option(
        None, "--position", "-p", help="Position within the section (appends if omitted)"
    ),
    title: str = typer.Option("New Scene", "--title", "-t", help="Scene title"),
    kind: SceneKind = typer.Option(SceneKind.TEXT, "--kind", "-k", help="Scene type"),
    script: Optional[str] = typer.Option(None, "--script", help="Narration text"),
    voice: Optional[str] = typer.Option(None, "--voice", help="Voice id for the narration"),
    clip: Optional[str] = typer.Option(None, "--clip", help="Uploaded clip id"),
    storyboard_path: Path = _storyboard_option(),
) -> None:
    """Insert a scene into a section."""
    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)

    scene = Scene(id="", kind=kind, title=title, script=script, voice_id=voice, clip_id=clip)
    inserted = storyboard.insert_scene(section, position, scene)
    if inserted is None:
        typer.echo(f"❌ Section {section} not found")
        raise typer.Exit(1)

    store.save(storyboard)
    typer.echo(f"✅ Added {inserted.id}: {inserted.title}")


@app.command("edit-scene")
def edit_scene(
    scene_id: str = typer.Argument(..., help="Scene id, e.g. scene_3"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Scene title"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Scene description"),
    script: Optional[str] = typer.Option(None, "--script", help="Narration text"),
    voice: Optional[str] = typer.Option(None, "--voice", help="Voice id for the narration"),
    clip: Optional[str] = typer.Option(None, "--clip", help="Uploaded clip id"),
    characters: Optional[List[str]] = typer.Option(
        None, "--character", "-c", help="Character in the scene (repeat, at most 3)"
    ),
    speaker: Optional[str] = typer.Option(None, "--speaker", help="Character speaking the script"),
    storyboard_path: Path = _storyboard_option(),
) -> None:
    """Edit the fields of one scene."""
    from .editor import assign_characters, update_scene

    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)

    changes = {
        field: value
        for field, value in (
            ("title", title),
            ("description", description),
            ("script", script),
            ("voice_id", voice),
            ("clip_id", clip),
        )
        if value is not None
    }

    try:
        scene = update_scene(storyboard, scene_id, **changes)
        if scene is not None and (characters or speaker):
            scene = assign_characters(storyboard, scene_id, characters or [], speaker)
    except ValueError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)

    if scene is None:
        typer.echo(f"❌ Scene {scene_id} not found")
        raise typer.Exit(1)

    store.save(storyboard)
    typer.echo(f"✅ Updated {scene.id}")


@app.command("remove-scene")
def remove_scene(
    scene_id: str = typer.Argument(..., help="Scene id, e.g. scene_3"),
    storyboard_path: Path = _storyboard_option(),
) -> None:
    """Remove a scene and renumber the rest."""
    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)

    removed = storyboard.remove_scene(scene_id)
    if removed is None:
        typer.echo(f"⚠️  Scene {scene_id} not found, nothing removed")
        raise typer.Exit(1)

    store.save(storyboard)
    typer.echo(f"✅ Removed {scene_id} ({removed.title or 'Untitled'}); {len(storyboard.flatten())} scene(s) left")


@app.command()
def move(
    scene_id: str = typer.Argument(..., help="Scene id, e.g. scene_3"),
    position: int = typer.Argument(..., help="Target position (0-based)"),
    section: Optional[int] = typer.Option(
        None,
        "--section",
        "-s",
        help="Move into this section; POSITION is then relative to the section"
    ),
    storyboard_path: Path = _storyboard_option(),
) -> None:
    """Move a scene to a new position. Attached clips and narration stay with it."""
    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)

    moved = storyboard.move_scene(scene_id, position, section_index=section)
    if moved is None:
        typer.echo(f"⚠️  Could not move {scene_id}")
        raise typer.Exit(1)

    store.save(storyboard)
    typer.echo(f"✅ {scene_id} is now {moved.id}")


@app.command()
def renumber(
    storyboard_path: Path = _storyboard_option(),
) -> None:
    """Reassign sequential scene ids."""
    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)

    changed = storyboard.renumber()
    store.save(storyboard)
    if changed:
        typer.echo(f"✅ Renumbered {len(changed)} scene(s):")
        for old, new in changed.items():
            typer.echo(f"   {old} → {new}")
    else:
        typer.echo("✅ Scene ids already sequential")


@app.command()
def voices() -> None:
    """List available narration voices."""
    from .services.elevenlabs import NarrationClient

    try:
        client = NarrationClient()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    typer.echo("🎙  Voices:")
    for voice in client.list_voices():
        details = ", ".join(v for v in (voice.gender, voice.accent) if v)
        line = f"   • {voice.id}: {voice.name}"
        if details:
            line += f" ({details})"
        typer.echo(line)
        if voice.description:
            typer.echo(f"     {voice.description}")


def _build_resolver(memory_cache: bool):
    from .render import AssetResolver, InMemoryVoiceoverCache, PersistentVoiceoverCache
    from .services.elevenlabs import NarrationClient
    from .services.storage import create_storage

    storage = create_storage()
    cache = InMemoryVoiceoverCache(storage) if memory_cache else PersistentVoiceoverCache(storage)
    return AssetResolver(storage, cache, NarrationClient()), cache


def _print_readiness(resolution) -> None:
    typer.echo("\n📋 Readiness:")
    for scene in resolution.scenes:
        if scene.ready:
            note = " (synthesized)" if scene.synthesized else ""
            typer.echo(f"   ✅ {scene.scene_id}{note}")
        else:
            typer.echo(f"   ⏳ {scene.scene_id}: missing {', '.join(scene.missing)}")
        for issue in scene.issues:
            typer.echo(f"      ⚠️  {issue.asset}: {issue.message}")
    if resolution.music_issue:
        typer.echo(f"   ⚠️  music: {resolution.music_issue.message}")
    typer.echo(f"\n   Ready: {len(resolution.ready_scenes)}/{len(resolution.scenes)}")


def _echo_progress(job: RenderJob) -> None:
    if job.status.is_active:
        typer.echo(f"\r   ⏳ {job.status.value} {job.progress}%", nl=False)
    elif job.status.is_terminal:
        typer.echo("")


@app.command()
def render(
    storyboard_path: Path = _storyboard_option(),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Resolve assets and report readiness without submitting a job"
    ),
    memory_cache: bool = typer.Option(
        False,
        "--memory-cache",
        help="Keep the voiceover index in memory only"
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the render (defaults to STORYREEL_JOB_TIMEOUT)"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Resolve scene assets, submit a render job and wait for the result."""
    from .services.render_backend import RenderBackendClient

    setup_logging(verbose)
    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)
    typer.echo(f"🎬 Rendering: {storyboard.title}")

    try:
        if not dry_run:
            config.validate_render_required()
        config.validate_synthesis_required()
        resolver, cache = _build_resolver(memory_cache)
        backend = None if dry_run else RenderBackendClient()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    try:
        if dry_run:
            resolution = resolver.resolve_sync(storyboard)
            store.save(storyboard)
            _print_readiness(resolution)
            return
        job = _run_render(storyboard, store, resolver, backend, timeout)
    finally:
        cache.close()

    if job.status == JobStatus.COMPLETED:
        typer.echo(f"✅ Video ready: {job.result_url}")
    else:
        label = "Timed out" if job.timed_out else "Render failed"
        typer.echo(f"❌ {label}: {job.error}")
        raise typer.Exit(1)


def _run_render(storyboard, store, resolver, backend, timeout) -> RenderJob:
    from .render import RenderSession

    session = RenderSession(
        storyboard,
        resolver,
        backend,
        save=store.save,
        on_update=_echo_progress,
        timeout=timeout,
    )

    async def run() -> RenderJob:
        attempt = await session.generate()
        _print_readiness(attempt.resolution)
        typer.echo(f"\n🚀 Submitted job {attempt.job_id}")
        return await session.wait()

    try:
        return asyncio.run(run())
    except StoryreelError as e:
        typer.echo(f"❌ {e.kind.value}: {e.message}")
        raise typer.Exit(1)


@app.command()
def assistant(
    instruction: str = typer.Argument(..., help="What to change or ask about"),
    storyboard_path: Path = _storyboard_option(),
    history_path: Optional[Path] = typer.Option(
        None,
        "--history",
        help="YAML file keeping the chat history between calls"
    ),
    apply: bool = typer.Option(
        True,
        "--apply/--preview",
        help="Save a proposed structure or only show it"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Ask the AI assistant to edit the storyboard structure."""
    from .agents import RestructureAgent, RestructureInput

    setup_logging(verbose)
    store = _load(storyboard_path)
    storyboard = _load_storyboard(store)

    try:
        config.validate_required()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    history: list = []
    if history_path and history_path.exists():
        history = yaml.safe_load(history_path.read_text()) or []

    try:
        agent = RestructureAgent()
        typer.echo(f"🤖 Asking {agent.model}...")
        result = agent.run(RestructureInput(storyboard, instruction, history))
    except Exception as e:
        typer.echo(f"❌ Assistant error: {e}")
        raise typer.Exit(1)

    typer.echo(f"\n{result.reply}")

    if result.changed:
        _print_scenes(result.storyboard)
        if apply:
            store.save(result.storyboard)
            typer.echo(f"\n✅ Storyboard updated: {storyboard_path}")
        else:
            typer.echo("\n   Preview only, storyboard not saved")

    if history_path:
        history.extend([
            {"role": "user", "content": instruction},
            {"role": "assistant", "content": result.reply},
        ])
        history_path.parent.mkdir(parents=True, exist_ok=True)
        history_path.write_text(yaml.safe_dump(history, sort_keys=False, allow_unicode=True))


@app.command("cache-stats")
def cache_stats(
    clear: bool = typer.Option(False, "--clear", help="Drop every cached voiceover entry"),
) -> None:
    """Show voiceover cache statistics."""
    from .render import PersistentVoiceoverCache
    from .services.storage import create_storage

    try:
        cache = PersistentVoiceoverCache(create_storage())
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    try:
        if clear:
            cache.clear()
            typer.echo("🧹 Voiceover cache cleared")
        stats = cache.get_stats()
        typer.echo("📦 Voiceover cache:")
        typer.echo(f"   Directory: {stats['directory']}")
        typer.echo(f"   Entries: {stats['entries']}")
        typer.echo(f"   Size: {stats['size_bytes'] / 1024:.1f} KiB")
    finally:
        cache.close()


if __name__ == "__main__":
    app()
