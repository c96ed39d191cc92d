from __future__ import annotations

import argparse
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from . import caches
from .cli_shared import GlobalOpts, OpError, _print_json
from .docker_runtime import DockerRuntime, HandleState
from .monitor import REQUEST_METHOD_PATTERN, TRAFFIC_PATTERN, LogMonitor, filter_lines
from .output import Reporter
from .probe import ping
from .yarn import YarnProject

LOG_TAIL_LINES = 10
NPM_DEFAULT_REGISTRY = "https://registry.npmjs.org/"
YARN_DEFAULT_REGISTRY = "https://registry.yarnpkg.com"


@dataclass
class CommandContext:
    g: GlobalOpts
    reporter: Reporter
    runtime: DockerRuntime
    project: YarnProject
    popen: Callable[..., Any] | None = None


def build_context(g: GlobalOpts) -> CommandContext:
    reporter = Reporter(quiet=g.quiet, verbose=g.verbose)
    return CommandContext(
        g=g,
        reporter=reporter,
        runtime=DockerRuntime(g, reporter=reporter),
        project=YarnProject(g, reporter=reporter),
    )


# -- lifecycle steps -----------------------------------------------------------


def _build(ctx: CommandContext) -> None:
    ctx.runtime.build()
    ctx.reporter.ok(f"Image {ctx.g.image} built successfully")


def _run(ctx: CommandContext) -> None:
    g, out = ctx.g, ctx.reporter
    if ctx.runtime.container_state() is not HandleState.ABSENT:
        out.info(f"Container {g.container} already exists. Removing...")
        ctx.runtime.remove_container(force=True)
    g.workdir_path.mkdir(parents=True, exist_ok=True)
    ctx.runtime.start_new_container()
    out.ok(f"Container {g.container} is running on port {g.port}")
    out.ok(f"Registry URL: {g.registry_url}")


def _stop(ctx: CommandContext) -> None:
    if ctx.runtime.container_state() is HandleState.RUNNING:
        ctx.runtime.stop_container()
        ctx.reporter.ok(f"Container {ctx.g.container} stopped")
    else:
        ctx.reporter.info(f"Container {ctx.g.container} is not running")


def _clean(ctx: CommandContext) -> None:
    _stop(ctx)
    if ctx.runtime.container_state() is not HandleState.ABSENT:
        ctx.runtime.remove_container()
        ctx.reporter.ok(f"Container {ctx.g.container} removed")
    else:
        ctx.reporter.info(f"Container {ctx.g.container} does not exist")


def _purge(ctx: CommandContext) -> None:
    _clean(ctx)
    # Container first: the runtime refuses to drop an image still in use.
    if ctx.runtime.image_present():
        ctx.runtime.remove_image()
        ctx.reporter.ok(f"Image {ctx.g.image} removed")
    if ctx.runtime.volume_present():
        ctx.runtime.remove_volume()
        ctx.reporter.ok(f"Volume {ctx.g.volume} removed")


def _clear_cache(ctx: CommandContext) -> None:
    out = ctx.reporter
    out.heading("Clearing all caches")
    out.info("1. Clearing Yarn Berry cache...")
    caches.clear_yarn_cache(ctx.g)
    out.ok("Yarn cache cleared", indent=3)
    out.blank()
    out.info("2. Clearing Verdaccio storage...")
    if caches.clear_registry_storage(ctx.runtime):
        out.ok("Verdaccio storage cleared", indent=3)
    else:
        out.info(f"   Verdaccio storage not reachable ({ctx.g.container} not running?), skipped")
    out.blank()
    out.info("3. Clearing local project cache...")
    caches.clear_project_cache(ctx.g)
    out.ok("Project cache cleared", indent=3)
    out.blank()
    out.ok("All caches cleared successfully")


def _tail_request_lines(ctx: CommandContext) -> list[str]:
    try:
        text = ctx.runtime.tail_logs(LOG_TAIL_LINES)
    except OpError:
        return []
    return filter_lines(text, REQUEST_METHOD_PATTERN)


# -- commands ------------------------------------------------------------------


def cmd_build(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    _build(build_context(g))
    return 0


def cmd_run(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    _run(build_context(g))
    return 0


def cmd_up(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    ctx = build_context(g)
    _build(ctx)
    _run(ctx)
    return 0


def cmd_stop(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    _stop(build_context(g))
    return 0


def cmd_restart(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    ctx = build_context(g)
    _stop(ctx)
    _run(ctx)
    return 0


def cmd_logs(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    return build_context(g).runtime.attach_logs()


def cmd_shell(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    return build_context(g).runtime.attach_shell()


def cmd_clean(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    _clean(build_context(g))
    return 0


def cmd_purge(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    _purge(build_context(g))
    return 0


def cmd_status(args: argparse.Namespace, g: GlobalOpts) -> int:
    ctx = build_context(g)
    rt, out = ctx.runtime, ctx.reporter
    if getattr(args, "json_output", False):
        snap = rt.snapshot()
        _print_json(
            {
                "kind": "verdaccio.status.v1",
                "container": {"name": g.container, "state": snap.container.value},
                "image": {"name": g.image, "present": snap.image_present},
                "volume": {"name": g.volume, "present": snap.volume_present},
                "port": g.port,
                "url": g.registry_url,
            }
        )
        return 0

    out.heading("Container Status")
    if rt.container_state() is HandleState.RUNNING:
        out.result("Status: Running ✓")
        out.result(f"Port: {g.port}")
        out.result(f"URL: {g.registry_url}")
        out.raw(rt.container_row())
    else:
        out.result("Status: Not running ✗")
    out.result("")
    out.heading("Image Status")
    if rt.image_present():
        out.result(f"Image: {g.image} exists ✓")
        out.raw(rt.image_row())
    else:
        out.result(f"Image: {g.image} does not exist ✗")
    return 0


def cmd_test(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    out = Reporter(quiet=g.quiet, verbose=g.verbose)
    out.info("Testing registry connection...")
    if ping(g.registry_url):
        out.result("✓ Registry is responding")
    else:
        out.fail("Registry is not responding")
    return 0


def cmd_npm_config(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    out = Reporter(quiet=g.quiet, verbose=g.verbose)
    url = g.registry_url
    out.result("To use this registry with npm:")
    out.result(f"  npm set registry {url}")
    out.result("")
    out.result("To use this registry with yarn:")
    out.result(f"  yarn config set registry {url}")
    out.result("")
    out.result("To reset to default:")
    out.result(f"  npm set registry {NPM_DEFAULT_REGISTRY}")
    out.result(f"  yarn config set registry {YARN_DEFAULT_REGISTRY}")
    return 0


def cmd_clear_cache(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    _clear_cache(build_context(g))
    return 0


def cmd_clean_test(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    ctx = build_context(g)
    _clear_cache(ctx)
    _stop(ctx)
    _run(ctx)
    ctx.reporter.ok("Test environment reset complete")
    ctx.reporter.info(f"Registry is ready for fresh testing at {g.registry_url}")
    return 0


def cmd_test_install(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    ctx = build_context(g)
    out = ctx.reporter
    out.heading("Testing package installation")
    ctx.project.ensure_descriptor()
    out.info("Testing with package")
    ctx.project.install(verbose=True)
    out.ok("Package installed successfully")
    return 0


def cmd_test_cycle(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    ctx = build_context(g)
    out = ctx.reporter
    _clear_cache(ctx)
    out.heading("Starting full test cycle")
    out.blank()
    out.info("Step 1: Clearing all caches (completed)")
    out.blank()
    ctx.project.ensure_descriptor()
    out.info("Step 2: Installing test package...")
    ctx.project.install()
    out.blank()
    out.info("Step 3: Checking Verdaccio logs...")
    for line in _tail_request_lines(ctx):
        out.result(line)
    out.blank()
    out.ok("Test cycle complete")
    return 0


def cmd_test_with_monitor(args: argparse.Namespace, g: GlobalOpts) -> int:
    del args
    ctx = build_context(g)
    out = ctx.reporter
    out.heading("Monitoring registry traffic")
    out.info("Starting log monitor in background...")
    monitor = LogMonitor(
        ctx.runtime.follow_logs_argv(),
        TRAFFIC_PATTERN,
        emit=out.result,
        popen=ctx.popen,
    )
    if not monitor.start():
        detail = str(monitor.error) if monitor.error else "follower did not start in time"
        out.info(f"Log monitor unavailable: {detail}")
    try:
        out.blank()
        out.info("Installing package...")
        ctx.project.install()
    finally:
        monitor.stop()
    out.blank()
    out.ok("Installation complete (check logs above for network activity)")
    return 0


def cmd_cache_status(args: argparse.Namespace, g: GlobalOpts) -> int:
    ctx = build_context(g)
    out = ctx.reporter
    yarn_report = caches.yarn_cache_report(g)
    registry_report = caches.registry_storage_report(ctx.runtime)
    project_reports = caches.project_cache_reports(g)

    if getattr(args, "json_output", False):
        _print_json(
            {
                "kind": "verdaccio.cache-status.v1",
                "yarn": yarn_report.to_dict(),
                "registry": registry_report.to_dict(),
                "project": [r.to_dict() for r in project_reports],
            }
        )
        return 0

    out.heading("Cache Status")
    out.result("")
    out.result("1. Yarn Berry cache:")
    if yarn_report.exists:
        out.result(f"   Location: {yarn_report.location}")
        out.result(f"   Size: {yarn_report.size}")
        out.result(f"   Files: {yarn_report.files}")
    else:
        out.result("   Cache directory does not exist")
    out.result("")
    out.result("2. Verdaccio storage:")
    if registry_report.exists:
        out.result(f"   Size: {registry_report.size}")
    else:
        out.result("   Not accessible")
    out.result("")
    out.result("3. Project cache:")
    for report in project_reports:
        if report.exists:
            out.result(f"   {report.name} exists: {report.size}")
        else:
            out.result(f"   No {report.name} directory")
    return 0
