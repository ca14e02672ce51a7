"""
Command-line interface for the HPOS Seed SDK
Generates and unlocks device bundles and encodes device identifiers
"""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from typing import Optional, Dict, Any

from . import initialize_sdk, __version__
from .config import SeedConfigManager
from .crypto.ed25519 import public_key_from_seed
from .crypto.storage import LockedBundleStorage
from .device import DeviceBundleManager, encode_device_bundle
from .exceptions import HposSeedError, IdentifierError, StorageError
from .identity.hcid import from_hcid, from_hostname, to_identifier_pair

logger = logging.getLogger(__name__)

STRUCTURED_LOG_FORMAT = "time=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"
PLAIN_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog='hpos-seed',
        description='HPOS seed bundle command-line interface for device bundles and identifiers'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'HPOS Seed SDK {__version__}'
    )

    parser.add_argument(
        '--check-compatibility',
        action='store_true',
        help='Check platform compatibility and exit'
    )

    parser.add_argument('--config', help='Configuration file (default: $HPOS_SEED_CONFIG or search path)')
    parser.add_argument('--profile', help='Configuration profile (default: $HPOS_SEED_PROFILE or config default)')
    parser.add_argument('--storage-dir', help='Directory for locked bundle file storage')
    parser.add_argument('--no-keyring', action='store_true', help='Never use the OS keyring for bundle storage')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='Increase log verbosity (-v info, -vv debug)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    setup_generate_parser(subparsers)
    setup_unlock_parser(subparsers)
    setup_identifier_parsers(subparsers)
    setup_storage_parser(subparsers)

    return parser


def add_passphrase_arguments(parser: argparse.ArgumentParser) -> None:
    """Passphrase sources shared by commands that lock or unlock"""
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--passphrase-env', metavar='VAR', help='Read the passphrase from an environment variable')
    group.add_argument('--passphrase-file', metavar='PATH', help='Read the passphrase from the first line of a file')


def setup_generate_parser(subparsers):
    """Setup device bundle generation subcommand."""
    generate_parser = subparsers.add_parser('generate', help='Generate a new locked device bundle')
    generate_parser.add_argument(
        '--derivation-path',
        type=int,
        help='Derivation index for the device seed (default: profile default)'
    )
    generate_parser.add_argument('--output', help='Write the bundle text to a file instead of stdout')
    generate_parser.add_argument('--save-to-storage', metavar='NAME', help='Save the locked bundle to storage')
    generate_parser.add_argument('--json', action='store_true', help='Print results as JSON')
    add_passphrase_arguments(generate_parser)


def setup_unlock_parser(subparsers):
    """Setup device bundle unlock subcommand."""
    unlock_parser = subparsers.add_parser('unlock', help='Unlock a device bundle and show its identity')
    source = unlock_parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--bundle', help='Locked bundle text (URL-safe base64)')
    source.add_argument('--bundle-file', help='File containing the locked bundle text')
    source.add_argument('--from-storage', metavar='NAME', help='Load the locked bundle from storage')
    unlock_parser.add_argument('--json', action='store_true', help='Print results as JSON')
    add_passphrase_arguments(unlock_parser)


def setup_identifier_parsers(subparsers):
    """Setup identifier encode / verify subcommands."""
    hcid_parser = subparsers.add_parser('hcid', help='Encode a hex public key as HCID, hostname and URL')
    hcid_parser.add_argument('public_key', help='Ed25519 public key in hex (32 bytes)')
    hcid_parser.add_argument('--suffix', help='Host suffix (default: from configuration)')
    hcid_parser.add_argument('--json', action='store_true', help='Print results as JSON')

    verify_parser = subparsers.add_parser('verify-hcid', help='Validate an HCID or hostname label')
    verify_parser.add_argument('identifier', help='HCID or hostname label')
    verify_parser.add_argument('--hostname', action='store_true', help='Treat the identifier as a hostname label')


def setup_storage_parser(subparsers):
    """Setup storage management subcommands."""
    storage_parser = subparsers.add_parser('storage', help='Locked bundle storage management')
    storage_subparsers = storage_parser.add_subparsers(dest='storage_command', help='Storage operations')

    storage_subparsers.add_parser('list', help='List stored bundles')

    save_parser = storage_subparsers.add_parser('save', help='Save locked bundle text to storage')
    save_parser.add_argument('name', help='Bundle name')
    save_source = save_parser.add_mutually_exclusive_group(required=True)
    save_source.add_argument('--bundle', help='Locked bundle text (URL-safe base64)')
    save_source.add_argument('--bundle-file', help='File containing the locked bundle text')

    load_parser = storage_subparsers.add_parser('load', help='Print stored locked bundle text')
    load_parser.add_argument('name', help='Bundle name')

    delete_parser = storage_subparsers.add_parser('delete', help='Delete a bundle from storage')
    delete_parser.add_argument('name', help='Bundle name')
    delete_parser.add_argument('--confirm', action='store_true', help='Skip confirmation prompt')


def configure_logging(config: SeedConfigManager, verbosity: int = 0) -> None:
    """Configure the root logger from the logging configuration and -v flags."""
    logging_config = config.get_logging_config()

    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, logging_config.level.upper(), logging.WARNING)

    log_format = STRUCTURED_LOG_FORMAT if logging_config.structured else PLAIN_LOG_FORMAT
    logging.basicConfig(level=level, format=log_format, stream=sys.stderr, force=True)


def load_config(args) -> SeedConfigManager:
    if args.config:
        return SeedConfigManager.from_file(args.config, args.profile)
    return SeedConfigManager.load_default(args.profile)


def get_storage(args) -> LockedBundleStorage:
    return LockedBundleStorage(storage_dir=args.storage_dir, use_keyring=not args.no_keyring)


def read_passphrase(args, confirm: bool = False) -> str:
    """Read the passphrase from --passphrase-env, --passphrase-file or a prompt."""
    if args.passphrase_env:
        passphrase = os.environ.get(args.passphrase_env)
        if passphrase is None:
            raise ValueError(f"Environment variable {args.passphrase_env} is not set")
        return passphrase

    if args.passphrase_file:
        with open(args.passphrase_file, 'r', encoding='utf-8') as f:
            return f.readline().rstrip('\r\n')

    passphrase = getpass.getpass('Passphrase: ')
    if confirm and getpass.getpass('Confirm passphrase: ') != passphrase:
        raise ValueError("Passphrases do not match")
    return passphrase


def read_bundle_text(args) -> str:
    """Read locked bundle text from --bundle or --bundle-file."""
    if args.bundle is not None:
        return args.bundle.strip()

    with open(args.bundle_file, 'r', encoding='utf-8') as f:
        return f.read().strip()


def print_result(result: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, indent=2))
        return

    labels = {
        'device_bundle': 'Device bundle',
        'public_key': 'Public key',
        'hcid': 'HCID',
        'hostname': 'Hostname',
        'url': 'URL',
        'derivation_path': 'Derivation path',
        'stored_as': 'Stored as',
        'written_to': 'Written to',
    }
    for key, value in result.items():
        if value is not None:
            print(f"{labels.get(key, key)}: {value}")


def handle_generate_command(args, config: SeedConfigManager) -> int:
    """Handle device bundle generation."""
    passphrase = read_passphrase(args, confirm=True)
    manager = DeviceBundleManager(config)

    locked, seed = asyncio.run(manager.generate_device_bundle(passphrase, args.derivation_path))
    with seed:
        public_key = public_key_from_seed(seed)

    device_bundle = encode_device_bundle(locked)
    pair = to_identifier_pair(public_key, config.get_identity_config().host_suffix)
    derivation_path = args.derivation_path if args.derivation_path is not None else config.default_derivation_path()

    result = {
        'device_bundle': device_bundle,
        'public_key': public_key.hex(),
        'hcid': pair.hcid,
        'url': pair.url,
        'derivation_path': derivation_path,
    }

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(device_bundle + '\n')
        del result['device_bundle']
        result['written_to'] = args.output

    if args.save_to_storage:
        metadata = get_storage(args).store_bundle(args.save_to_storage, device_bundle)
        result['stored_as'] = f"{metadata.bundle_id} ({metadata.storage_type})"

    print_result(result, args.json)
    return 0


def handle_unlock_command(args, config: SeedConfigManager) -> int:
    """Handle device bundle unlock."""
    if args.from_storage:
        device_bundle = get_storage(args).retrieve_bundle(args.from_storage)
        if device_bundle is None:
            print(f"Error: No bundle stored as '{args.from_storage}'", file=sys.stderr)
            return 1
    else:
        device_bundle = read_bundle_text(args)

    passphrase = read_passphrase(args)
    identity = asyncio.run(DeviceBundleManager(config).unlock_identity(device_bundle, passphrase))

    print_result({
        'public_key': identity.public_key_hex,
        'hcid': identity.hcid,
        'url': identity.url,
        'derivation_path': identity.derivation_path,
    }, args.json)
    return 0


def handle_hcid_command(args, config: SeedConfigManager) -> int:
    """Handle public key identifier encoding."""
    try:
        public_key = bytes.fromhex(args.public_key)
    except ValueError:
        print("Error: Public key must be hex", file=sys.stderr)
        return 1

    suffix = args.suffix or config.get_identity_config().host_suffix
    pair = to_identifier_pair(public_key, suffix)

    print_result({'hcid': pair.hcid, 'hostname': pair.hostname, 'url': pair.url}, args.json)
    return 0


def handle_verify_hcid_command(args) -> int:
    """Handle identifier validation."""
    try:
        if args.hostname:
            public_key = from_hostname(args.identifier)
        else:
            public_key = from_hcid(args.identifier)
    except IdentifierError as e:
        print(f"Invalid identifier: {e}", file=sys.stderr)
        return 1

    print("Identifier is valid")
    print(f"Public key: {public_key.hex()}")
    return 0


def handle_storage_command(args) -> int:
    """Handle storage management commands."""
    try:
        if args.storage_command == 'list':
            return handle_storage_list_command(args)
        elif args.storage_command == 'save':
            return handle_storage_save_command(args)
        elif args.storage_command == 'load':
            return handle_storage_load_command(args)
        elif args.storage_command == 'delete':
            return handle_storage_delete_command(args)
        else:
            print("Error: No storage subcommand specified", file=sys.stderr)
            return 1
    except StorageError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        return 1


def handle_storage_list_command(args) -> int:
    """Handle listing stored bundles."""
    bundles = get_storage(args).list_bundles()

    if not bundles:
        print("No bundles stored")
    else:
        print("Stored bundles:")
        for name in bundles:
            print(f"  {name}")

    return 0


def handle_storage_save_command(args) -> int:
    """Handle saving bundle text to storage."""
    metadata = get_storage(args).store_bundle(args.name, read_bundle_text(args))
    print(f"Bundle saved to {metadata.storage_type} storage as: {metadata.bundle_id}")
    return 0


def handle_storage_load_command(args) -> int:
    """Handle loading bundle text from storage."""
    device_bundle = get_storage(args).retrieve_bundle(args.name)
    if device_bundle is None:
        print(f"Error: No bundle stored as '{args.name}'", file=sys.stderr)
        return 1

    print(device_bundle)
    return 0


def handle_storage_delete_command(args) -> int:
    """Handle deleting a bundle from storage."""
    if not args.confirm:
        response = input(f"Are you sure you want to delete bundle '{args.name}'? (y/N): ")
        if response.lower() not in ['y', 'yes']:
            print("Operation cancelled")
            return 0

    if get_storage(args).delete_bundle(args.name):
        print(f"Bundle '{args.name}' deleted")
        return 0

    print(f"Error: No bundle stored as '{args.name}'", file=sys.stderr)
    return 1


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI

    Args:
        argv: Command line arguments (None to use sys.argv)

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.check_compatibility:
            result = initialize_sdk()
            if result['compatible']:
                print("Platform is compatible with HPOS Seed SDK")
                for warning in result['warnings']:
                    print(f"  Warning: {warning}")
                return 0
            else:
                print("Platform is not compatible with HPOS Seed SDK")
                for warning in result['warnings']:
                    print(f"  Error: {warning}")
                return 1

        config = load_config(args)
        configure_logging(config, args.verbose)
        logger.debug(f"Using configuration profile '{config.current_profile}'")

        if args.command == 'generate':
            return handle_generate_command(args, config)
        elif args.command == 'unlock':
            return handle_unlock_command(args, config)
        elif args.command == 'hcid':
            return handle_hcid_command(args, config)
        elif args.command == 'verify-hcid':
            return handle_verify_hcid_command(args)
        elif args.command == 'storage':
            return handle_storage_command(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except HposSeedError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
