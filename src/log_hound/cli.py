"""Main CLI entry point"""

import asyncio
from typing import List, Optional, Tuple

import click

from log_hound import __version__
from log_hound.config import ConfigManager, SearchOptions, resolve_search_options
from log_hound.core.exceptions import AggregateSearchError, InvalidInputError, LogHoundError, SSHConnectionError
from log_hound.core.logging_config import setup_logging
from log_hound.core.time_range import TimeRange, utcnow
from log_hound.logs.addressing import resolve_targets
from log_hound.logs.base import LogSourceType, SearchQuery
from log_hound.logs.orchestrator import SearchOrchestrator
from log_hound.logs.router import get_log_router
from log_hound.logs.stream_manager import FollowStreamManager
from log_hound.schemas.kamal import KamalConfig
from log_hound.services.connection_pool import CloudWatchClientPool
from log_hound.utils import (
    OUTPUT_MODES,
    OutputFormatter,
    error_handler,
    format_entry,
    format_error,
    format_search_banner,
    format_table,
)


SEARCH_EXAMPLES = """
\b
Examples:
  log-hound search "ERROR" -g my-app/production
  log-hound search "user_id=123" -g api/logs,web/logs --last 2h
  log-hound search "timeout" -g service/prod --limit 50 -o grouped
  log-hound search "ERROR" "user_id=123" -g app/logs   # AND condition
  log-hound search "ERROR" -g app/logs --exclude health-check
  log-hound search "ERROR" -g us-east-1:app/logs,eu-west-1:app/logs
  log-hound search "ERROR" -p production               # Use preset
  log-hound search "ERROR" --source kamal -d config/deploy.yml --follow
"""


def _split_csv(values: Tuple[str, ...]) -> List[str]:
    """Flatten repeated and comma separated option values"""
    result = []
    for value in values:
        result.extend(part.strip() for part in value.split(',') if part.strip())
    return result


def _time_range(options: SearchOptions, start: Optional[str], end: Optional[str]) -> TimeRange:
    if start:
        return TimeRange.from_explicit(start, end)
    if end:
        raise InvalidInputError("end", "--end requires --start")
    return TimeRange.from_relative(options.time_range)


@click.group()
@click.option('--config', '-c', 'config_path', type=click.Path(dir_okay=False),
              help='Config file location (default ~/.log-hound.yaml)')
@click.option('--profile', envvar='AWS_PROFILE', help='AWS profile to use')
@click.option('--region', envvar='AWS_REGION', help='AWS region')
@click.option('--debug', is_flag=True, help='Trace queries and remote commands to stderr')
@click.version_option(__version__, prog_name='log-hound')
@click.pass_context
def cli(ctx, config_path, profile, region, debug):
    """Log Hound - search CloudWatch Logs Insights and Kamal container logs"""
    if debug:
        setup_logging(debug=True)

    config_manager = ConfigManager(config_path)
    cfg = config_manager.load()

    ctx.obj = {
        'config': cfg,
        'config_manager': config_manager,
        'profile': profile or cfg.default_profile,
        'region': region or cfg.default_region,
        'color': ctx.color is not False,
    }


@cli.command(epilog=SEARCH_EXAMPLES)
@click.argument('patterns', nargs=-1)
@click.option('--groups', '-g', multiple=True, help='Log groups to search (comma-separated, region:group allowed)')
@click.option('--preset', '-p', help='Use a saved preset from config')
@click.option('--exclude', '-x', multiple=True, help='Exclude patterns (comma-separated)')
@click.option('--last', '-l', help='Time range, e.g. 1h, 30m, 2d, 1h30m')
@click.option('--start', help='Start time (alternative to --last)')
@click.option('--end', help='End time (used with --start)')
@click.option('--output', '-o', type=click.Choice(OUTPUT_MODES), default='interleaved',
              help='Output mode')
@click.option('--limit', type=click.IntRange(min=1), help='Maximum results per target')
@click.option('--source', type=click.Choice([t.value for t in LogSourceType]),
              help='Log source backend')
@click.option('--deploy-file', '-d', help='Kamal deploy file (default config/deploy.yml)')
@click.option('--follow', '-f', is_flag=True, help='Follow new log lines (Kamal only)')
@click.option('--server', help='Kamal server to use (default: all, or the first when following)')
@click.pass_context
@error_handler
def search(ctx, patterns, groups, preset, exclude, last, start, end, output, limit,
           source, deploy_file, follow, server):
    """Search logs for lines containing every PATTERN"""
    if not patterns and not preset:
        raise click.UsageError("Give at least one PATTERN or a --preset")

    options = resolve_search_options(
        ctx.obj['config'],
        preset_name=preset,
        groups=_split_csv(groups),
        patterns=list(patterns),
        exclude=_split_csv(exclude),
        time_range=last,
        limit=limit,
        source=source,
        deploy_file=deploy_file,
    )

    if follow:
        if options.source != LogSourceType.KAMAL:
            raise click.UsageError("--follow is only supported with --source kamal")
        # Without an explicit window, following starts from now
        if start or last:
            window = _time_range(options, start, None)
        else:
            now = utcnow()
            window = TimeRange(start=now, end=now)
    else:
        window = _time_range(options, start, end)

    query = SearchQuery(
        start=window.start,
        end=window.end,
        include=tuple(options.patterns),
        exclude=tuple(options.exclude),
        limit=options.limit,
    )
    formatter = OutputFormatter(output, color=ctx.obj['color'])

    if options.source == LogSourceType.KAMAL:
        kamal_config = KamalConfig.load(options.deploy_file)
        provider = get_log_router().create_provider(LogSourceType.KAMAL, config=kamal_config)
        if follow:
            asyncio.run(_follow(provider, provider.targets(server or kamal_config.servers[0])[0], query, formatter))
            return
        targets = provider.targets(server)
        if output != 'json':
            click.echo(format_search_banner(options.patterns, options.exclude, window.start, window.end,
                                            formatter.color))
            destination = f" ({kamal_config.destination})" if kamal_config.destination else ""
            click.echo(f"Kamal service {kamal_config.service}{destination} on {', '.join(t.endpoint for t in targets)}\n")
    else:
        if not options.groups:
            raise InvalidInputError("groups", "No log groups specified. Use --groups or configure defaults.")
        pool = CloudWatchClientPool(profile=ctx.obj['profile'], default_region=ctx.obj['region'])
        provider = get_log_router().create_provider(LogSourceType.CLOUDWATCH, client_pool=pool)
        targets = resolve_targets(options.groups)
        if output != 'json':
            click.echo(format_search_banner(options.patterns, options.exclude, window.start, window.end,
                                            formatter.color))
            click.echo(f"Log groups: {', '.join(options.groups)}\n")

    orchestrator = SearchOrchestrator(provider)
    if output == 'streaming':
        asyncio.run(_stream(orchestrator, targets, query, formatter))
    else:
        results = asyncio.run(orchestrator.search_all(targets, query))
        for line in formatter.format_errors(results):
            click.echo(line, err=True)
        click.echo(formatter.format(results))
        results.raise_if_all_failed()


async def _stream(orchestrator: SearchOrchestrator, targets, query: SearchQuery,
                  formatter: OutputFormatter):
    """Print each target's results as it completes, in request order"""
    querying = click.style('Querying', dim=True) if formatter.color else 'Querying'
    for target in targets:
        click.echo(f"{querying} {target.label}...")

    failures = []
    async for outcome in orchestrator.iter_completed(targets, query):
        label = outcome.target.label
        click.echo(f"\n{click.style(label, fg='cyan', bold=True) if formatter.color else label}:")
        if not outcome.ok:
            failures.append((outcome.target.label, outcome.error))
            click.echo(format_error(outcome.target, outcome.error, formatter.color), err=True)
            continue
        for entry in sorted(outcome.entries, key=lambda e: e.timestamp):
            click.echo(format_entry(entry, formatter.color))
    if targets and len(failures) == len(targets):
        raise AggregateSearchError(failures)


async def _follow(provider, target, query: SearchQuery, formatter: OutputFormatter):
    manager = FollowStreamManager()
    session = await manager.start(provider, target, query)
    click.echo(f"Following {target.resource} on {target.endpoint} (Ctrl-C to stop)", err=True)
    try:
        async for entry in session:
            if formatter.mode == 'json':
                click.echo(formatter.format_json_line(entry))
            else:
                click.echo(format_entry(entry, formatter.color))
    finally:
        await manager.stop()
    error = session.error
    if isinstance(error, LogHoundError):
        raise error
    if error is not None:
        raise SSHConnectionError(
            f"Follow stream from {target.endpoint} failed: {error}", endpoint=target.endpoint
        ) from error


@cli.command()
@click.option('--prefix', '-p', help='Filter log groups by prefix')
@click.pass_context
@error_handler
def groups(ctx, prefix):
    """List available log groups"""
    pool = CloudWatchClientPool(profile=ctx.obj['profile'], default_region=ctx.obj['region'])
    provider = get_log_router().create_provider(LogSourceType.CLOUDWATCH, client_pool=pool)
    names = asyncio.run(provider.list_resources(ctx.obj['region'], prefix))

    if not names:
        click.echo("No log groups found")
        return
    for name in names:
        click.echo(name)
    click.echo(f"\n{len(names)} log groups", err=True)


@cli.group()
def config():
    """Manage configuration"""
    pass


@config.command()
@click.pass_context
def show(ctx):
    """Show current configuration file"""
    config_manager = ctx.obj['config_manager']
    contents = config_manager.read_text()
    if contents is None:
        click.echo(click.style("No config file found.", fg='yellow'))
        click.echo("Run 'log-hound config init' to create one.")
        return
    click.echo(contents)


@config.command()
@click.pass_context
def path(ctx):
    """Show config file path"""
    click.echo(str(ctx.obj['config_manager'].config_path))


@config.command()
@click.pass_context
def init(ctx):
    """Generate a sample configuration file"""
    config_manager = ctx.obj['config_manager']
    if not config_manager.init_sample():
        click.echo(f"{click.style('Warning:', fg='yellow')} Config file already exists at "
                   f"{config_manager.config_path}", err=True)
        click.echo("Remove it first if you want to regenerate.", err=True)
        return
    click.echo(f"{click.style('Success:', fg='green')} Created config file at {config_manager.config_path}")


@config.command()
@click.pass_context
def presets(ctx):
    """List available presets"""
    cfg = ctx.obj['config']
    if not cfg.presets:
        click.echo(click.style("No presets configured.", fg='yellow'))
        click.echo(f"Add presets to your config file ({ctx.obj['config_manager'].config_path})")
        return

    rows = []
    for name, preset in sorted(cfg.presets.items()):
        if preset.source_type == LogSourceType.KAMAL:
            targets = preset.deploy_file or '-'
        else:
            targets = ', '.join(preset.groups) or '-'
        rows.append({
            'name': name,
            'source': preset.source_type.value,
            'targets': targets,
            'exclude': ', '.join(preset.exclude) or '-',
            'description': preset.description or '',
        })
    click.echo(format_table(rows, ['name', 'source', 'targets', 'exclude', 'description']))


if __name__ == '__main__':
    cli()
