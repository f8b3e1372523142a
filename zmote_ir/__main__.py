#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import asyncio
import logging
from dataclasses import replace
from signal import SIGINT, SIGTERM

from zmote_ir.internal_types import *

from zmote_ir import (
    __version__ as pkg_version,
    DiscoveryRegistry,
    DiscoveryListener,
    DeviceDescriptor,
    TransmitService,
    ZMoteConfig,
    DEFAULT_RECEIVE_TIMEOUT,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_TIMEOUT,
    DEFAULT_RETRY_COUNT,
  )

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

class _PrintingListener(DiscoveryListener):
    """Prints each discovered device as a JSON object, once per uuid."""
    seen: Set[str]

    def __init__(self):
        self.seen = set()

    def device_discovered(self, device: DeviceDescriptor) -> None:
        if device.uuid in self.seen:
            return
        self.seen.add(device.uuid)
        print(json.dumps(device.as_properties(), indent=2, sort_keys=True))
        sys.stdout.flush()

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _get_bind_addresses(self) -> Optional[List[str]]:
        bind_addresses: Optional[List[str]] = self._args.bind_addresses
        if not bind_addresses is None and len(bind_addresses) == 0:
            bind_addresses = None
        return bind_addresses

    def _get_config(self) -> ZMoteConfig:
        """Builds the device configuration from --config (if given), overridden by explicit options."""
        config_pathname: Optional[str] = self._args.config
        config = ZMoteConfig() if config_pathname is None else ZMoteConfig.load(config_pathname)
        overrides: Dict[str, Any] = {}
        for arg_name, field_name in (
                ('uuid', 'uuid'),
                ('url', 'override_url'),
                ('config_file', 'config_file'),
                ('remote', 'remote_name'),
                ('retry', 'retry_count'),
                ('timeout', 'timeout_seconds'),
              ):
            value = getattr(self._args, arg_name, None)
            if value is not None:
                overrides[field_name] = value
        return replace(config, **overrides).validate()

    async def _resolve_url(self, config: ZMoteConfig) -> ZMoteConfig:
        """If no URL is configured, scans the network for the device and fills in its URL."""
        if config.url is not None:
            return config
        logging.debug(f"No URL configured for {config.uuid}; scanning")
        async with DiscoveryRegistry(
                receive_timeout=self._args.wait_time,
                bind_addresses=self._get_bind_addresses()
              ) as registry:
            await registry.start_scan()
            device = registry.get_device(config.uuid)
        if device is None:
            raise CmdExitError(1, f"Device {config.uuid} was not found on the network; use --url")
        logging.debug(f"Discovered {device}")
        return config.with_discovered_url(device.url)

    async def cmd_discover(self) -> int:
        listener = _PrintingListener()
        async with DiscoveryRegistry(
                receive_timeout=self._args.wait_time,
                bind_addresses=self._get_bind_addresses()
              ) as registry:
            registry.add_listener(listener)
            await registry.start_scan()
        return 0

    async def cmd_monitor(self) -> int:
        interval: float = self._args.interval
        listener = _PrintingListener()
        async with DiscoveryRegistry(bind_addresses=self._get_bind_addresses()) as registry:
            registry.add_listener(listener)
            registry.start_background_discovery(interval=interval)
            done = asyncio.get_running_loop().create_future()
            if not self._provide_traceback:
                loop = asyncio.get_running_loop()
                for signal in (SIGINT, SIGTERM):
                    loop.add_signal_handler(signal, lambda: done.done() or done.set_result(None))
            try:
                duration: Optional[float] = self._args.duration
                try:
                    await asyncio.wait_for(done, duration)
                except asyncio.TimeoutError:
                    pass
            finally:
                if not self._provide_traceback:
                    for signal in (SIGINT, SIGTERM):
                        loop.remove_signal_handler(signal)
        return 0

    async def cmd_check(self) -> int:
        config = await self._resolve_url(self._get_config())
        async with TransmitService() as service:
            await service.register_configuration(config)
            online = await service.check_online(config)
        print("online" if online else "offline")
        return 0 if online else 1

    async def cmd_send_code(self) -> int:
        config = await self._resolve_url(self._get_config())
        async with TransmitService() as service:
            await service.register_configuration(config)
            await service.send_code(config, self._args.code, repeat=self._args.repeat, toggle_code=self._args.toggle_code)
        return 0

    async def cmd_send_key(self) -> int:
        config = await self._resolve_url(self._get_config())
        config.validate(require_config_file=True)
        async with TransmitService() as service:
            await service.register_configuration(config)
            if not await service.send_key(config, self._args.key, repeat=self._args.repeat):
                raise CmdExitError(1, f"Button '{self._args.key}' is not defined in '{config.config_file}'")
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    def _add_device_args(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('-c', '--config', default=None,
                            help='''A JSON device configuration file with any of the properties uuid, url, configFile, remote, retry and timeout.
                                    Explicit options override its values.''')
        parser.add_argument('--uuid', default=None,
                            help='''The uuid of the device. Required unless given by --config.''')
        parser.add_argument('--url', default=None,
                            help='''The base URL of the device. Default: discover it with a scan.''')
        parser.add_argument('--timeout', type=int, default=None,
                            help=f'''The HTTP timeout, in seconds. Default: {DEFAULT_TIMEOUT}''')
        parser.add_argument('--wait-time', type=float, default=DEFAULT_RECEIVE_TIMEOUT,
                            help=f'''If a scan is needed, the amount of silence that ends it, in seconds. Default: {DEFAULT_RECEIVE_TIMEOUT}''')
        parser.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[],
                            help='''If a scan is needed, the local IP address on which to join the multicast group. May be repeated.
                                    Default: all local non-loopback addresses.''')

    def _add_send_args(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('--repeat', type=int, default=1,
                            help='''The number of times to send the code. Default: 1''')
        parser.add_argument('--retry', type=int, default=None,
                            help=f'''The number of additional attempts made while the device is busy. Default: {DEFAULT_RETRY_COUNT}''')

    async def arun(self) -> int:
        """Parses the arguments given to the constructor (sys.argv[1:] if None) and runs the
        selected zmote command.

        Returns:
            int: The process exit code. 0 on success, 1 if the command failed or a device was
                 offline, 2 for argument errors.
        """
        parser = NoExitArgumentParser(prog="zmote", description="Discover ZMote IR blasters and send infrared codes through them.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Scan the local network for ZMote devices")
        parser_discover.add_argument('--wait-time', type=float, default=DEFAULT_RECEIVE_TIMEOUT,
                            help=f'''The amount of silence that ends the scan, in seconds. Default: {DEFAULT_RECEIVE_TIMEOUT}''')
        parser_discover.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[],
                            help='''The local IP address on which to join the multicast group. May be repeated.
                                    Default: all local non-loopback addresses.''')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= monitor

        parser_monitor = subparsers.add_parser('monitor', description="Continuously discover ZMote devices until interrupted")
        parser_monitor.add_argument('--interval', type=float, default=DEFAULT_DISCOVERY_INTERVAL,
                            help=f'''The length of each discovery cycle, in seconds. Default: {DEFAULT_DISCOVERY_INTERVAL}''')
        parser_monitor.add_argument('--duration', type=float, default=None,
                            help='''Stop after this many seconds. Default: run until SIGINT/SIGTERM''')
        parser_monitor.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[],
                            help='''The local IP address on which to join the multicast group. May be repeated.
                                    Default: all local non-loopback addresses.''')
        parser_monitor.set_defaults(func=self.cmd_monitor)

        # ======================= check

        parser_check = subparsers.add_parser('check', description="Check whether a device is reachable. Exits with 0 if online, 1 if offline")
        self._add_device_args(parser_check)
        parser_check.set_defaults(func=self.cmd_check)

        # ======================= send-code

        parser_send_code = subparsers.add_parser('send-code', description="Send a raw IR code")
        self._add_device_args(parser_send_code)
        self._add_send_args(parser_send_code)
        parser_send_code.add_argument('--toggle-code', default=None,
                            help='''An alternate code, sent on every other repetition.''')
        parser_send_code.add_argument('code',
                            help='''The raw IR code, e.g. "38000,1,1,342,171,21,...".''')
        parser_send_code.set_defaults(func=self.cmd_send_code)

        # ======================= send-key

        parser_send_key = subparsers.add_parser('send-key', description="Send the IR code of a button defined in a remote configuration file")
        self._add_device_args(parser_send_key)
        self._add_send_args(parser_send_key)
        parser_send_key.add_argument('-f', '--config-file', dest='config_file', default=None,
                            help='''The remote configuration file. Required unless given by --config.''')
        parser_send_key.add_argument('--remote', default=None,
                            help='''A name for the remote, used in log messages.''')
        parser_send_key.add_argument('key',
                            help='''The button key, e.g. "power". Case-insensitive.''')
        parser_send_key.set_defaults(func=self.cmd_send_key)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"zmote: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"zmote: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
