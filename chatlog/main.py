"""
Chatlog main entry point.

Builds the message logging stack (settings, store, log store, enrichment,
diagnostics, pipeline) against an in-process stand-in for the host client,
replays a JSON trace of store mutations and client calls through it, then
prints status and optionally writes an export.

Trace format (JSON array, steps applied in order):
    {"setState": {"messaging": {"conversations": {...}}}}   deep-merged into state
    {"call": "sendMessage", "args": ["c1", {"text": "hi"}]}  invoke the current client slot
    {"setting": "MESSAGE_LOGGING", "value": false}           change a setting
    {"drain": true}                                          wait for pending enrichment

Usage:
    python -m chatlog.main --trace trace.json [--config config.json] [--export ./exports]

Property of Uncompromising Sensors LLC.
"""

import asyncio
import argparse
import sys
import orjson
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatlog.commands import MessageLoggingCommands
from chatlog.core.contract import DEFAULT_ENRICHMENT_TIMEOUT_SECONDS, SETTING_DEFAULTS
from chatlog.core.diagnostics import MessageDebugger
from chatlog.core.enrichment import EnrichmentService, HttpUserDirectory, StaticUserDirectory
from chatlog.core.pipeline import EventPipeline
from chatlog.core.settings import Settings
from chatlog.core.store import ObservableStore, selectPath
from sdk.logging import getLogger, configureLogging


class ConfigError(Exception):
    """Invalid configuration or trace file"""
    pass


def loadConfig(configPath: Optional[str]) -> Dict[str, Any]:
    """
    Load configuration from a JSON file (None -> empty config).

    Raises:
        ConfigError: If the file is missing, not JSON, or has bad field types
    """
    if configPath is None:
        return {}

    config = _readJson(configPath, 'config')
    if not isinstance(config, dict):
        raise ConfigError(f"Config must be a JSON object: {configPath}")

    settings = config.get('settings', {})
    if not isinstance(settings, dict):
        raise ConfigError("'settings' must be an object")
    unknown = set(settings) - set(SETTING_DEFAULTS)
    if unknown:
        raise ConfigError(f"Unknown settings: {sorted(unknown)}")

    for section in ('logging', 'userDirectory'):
        if not isinstance(config.get(section, {}), dict):
            raise ConfigError(f"'{section}' must be an object")

    timeout = config.get('enrichmentTimeoutSeconds', DEFAULT_ENRICHMENT_TIMEOUT_SECONDS)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("'enrichmentTimeoutSeconds' must be a positive number")

    return config


def loadTrace(tracePath: str) -> List[Dict[str, Any]]:
    steps = _readJson(tracePath, 'trace')
    if not isinstance(steps, list) or not all(isinstance(step, dict) for step in steps):
        raise ConfigError(f"Trace must be a JSON array of objects: {tracePath}")
    return steps


def _readJson(path: str, kind: str) -> Any:
    try:
        with open(path, 'rb') as f:
            return orjson.loads(f.read())
    except FileNotFoundError:
        raise ConfigError(f"{kind.capitalize()} file not found: {path}")
    except orjson.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {kind} file {path}: {e}")


class ReplayClient:
    """Stand-in host messaging client; records every call it receives."""

    def __init__(self):
        self.calls: List[tuple] = []

    def sendMessage(self, conversationId, message):
        self.calls.append(('sendMessage', conversationId, message))
        return {'ok': True, 'conversationId': conversationId}

    def updateMessage(self, conversationId, messageId, updateType):
        self.calls.append(('updateMessage', conversationId, messageId, updateType))
        return {'ok': True, 'messageId': messageId}

    def deleteMessage(self, conversationId, messageId):
        self.calls.append(('deleteMessage', conversationId, messageId))
        return {'ok': True, 'messageId': messageId}


def buildInitialState(client: ReplayClient, userId: str) -> Dict[str, Any]:
    return {
        'user': {'userId': userId},
        'messaging': {
            'updateMessage': client.updateMessage,
            'client': {
                'sendMessage': client.sendMessage,
                'deleteMessage': client.deleteMessage,
            },
            'conversations': {},
        },
    }


def buildDirectory(config: Dict[str, Any]):
    """HTTP directory when baseUrl is set, else a static table from 'users'."""
    baseUrl = config.get('baseUrl')
    if baseUrl:
        return HttpUserDirectory(baseUrl, timeoutSeconds=config.get('timeoutSeconds', 2.0))
    if config.get('users'):
        return StaticUserDirectory(config['users'])
    return None


def mergePatch(current: Any, patch: Any) -> Any:
    """Recursive dict merge returning new containers along every patched path."""
    if not isinstance(current, dict) or not isinstance(patch, dict):
        return patch
    merged = dict(current)
    for key, value in patch.items():
        merged[key] = mergePatch(current.get(key), value)
    return merged


CALL_SLOT_PATHS = {
    'sendMessage': ('messaging', 'client', 'sendMessage'),
    'updateMessage': ('messaging', 'updateMessage'),
    'deleteMessage': ('messaging', 'client', 'deleteMessage'),
}


async def applyStep(step: Dict[str, Any], store: ObservableStore, settings: Settings, pipeline: EventPipeline):
    """
    Apply one trace step.

    Raises:
        ConfigError: On an unknown step shape or call name
    """
    if 'setState' in step:
        patch = step['setState']
        if not isinstance(patch, dict):
            raise ConfigError("'setState' must be an object")
        state = store.getState()
        store.setState({key: mergePatch(state.get(key), value) for key, value in patch.items()})
    elif 'call' in step:
        path = CALL_SLOT_PATHS.get(step['call'])
        if path is None:
            raise ConfigError(f"Unknown call: {step['call']}")
        function = selectPath(store.getState(), path)
        function(*step.get('args', []), **step.get('kwargs', {}))
    elif 'setting' in step:
        settings.setSetting(step['setting'], step.get('value'))
    elif 'drain' in step:
        await pipeline.drain()
    else:
        raise ConfigError(f"Unknown trace step: {sorted(step)}")

    # Let enrichment tasks make progress between steps
    await asyncio.sleep(0)


async def runReplay(config: Dict[str, Any], steps: List[Dict[str, Any]],
                    exportDir: Optional[str] = None, out=None) -> EventPipeline:
    log = getLogger()

    settings = Settings(config.get('settings'))
    diagnostics = MessageDebugger(settings)
    enrichment = EnrichmentService(buildDirectory(config.get('userDirectory', {})), diagnostics)
    client = ReplayClient()
    store = ObservableStore(buildInitialState(client, config.get('userId', 'self')))
    pipeline = EventPipeline(
        store, settings,
        enrichment=enrichment,
        diagnostics=diagnostics,
        enrichmentTimeout=config.get('enrichmentTimeoutSeconds', DEFAULT_ENRICHMENT_TIMEOUT_SECONDS),
    )

    pipeline.start()
    try:
        for index, step in enumerate(steps):
            await applyStep(step, store, settings, pipeline)
            log.debug("Applied trace step", index=index, clientCalls=len(client.calls))
        await pipeline.drain()
    finally:
        await enrichment.close()

    log.info("Replay complete", steps=len(steps), entries=len(pipeline.logStore),
             clientCalls=len(client.calls))

    commands = MessageLoggingCommands(pipeline, settings, out)
    commands.status()
    if exportDir:
        commands.export(exportDir)

    pipeline.stop()
    return pipeline


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Chatlog - message event logging replay')
    parser.add_argument('--trace', required=True, help='Path to JSON trace file')
    parser.add_argument('--config', default=None, help='Path to config file')
    parser.add_argument('--export', default=None, help='Directory to write a JSON export to')
    args = parser.parse_args(argv)

    try:
        config = loadConfig(args.config)
        steps = loadTrace(args.trace)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    loggingConfig = config.get('logging', {})
    configureLogging(
        logDir=loggingConfig.get('logDir'),
        maxBytes=loggingConfig.get('maxBytes', 10_000_000),
        backupCount=loggingConfig.get('backupCount', 5),
        console=loggingConfig.get('console', True),
        level=loggingConfig.get('level', 'INFO'),
        utc=loggingConfig.get('utc', False),
    )

    try:
        asyncio.run(runReplay(config, steps, args.export))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
