#!/usr/bin/env python3
"""
omti command line interface

  omti repo create <repo_name> <folder_path>
  omti repo tag <tag_name> <branch_name> <folder_path>
  omti db backup <db_config> <local_save_path> [--remote user@host:port]
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .backup import BackupTool
from .config import OmtiConfig, load_config_file, sample_config
from .connection import parse_connection_string, parse_remote_string
from .errors import OmtiError, ParseError
from .preflight import Preflight
from .repo import RepositoryManager
from .runner import CommandRunner

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


def setup_logging(level_name: str = 'info') -> logging.Logger:
    """Configure and return the omti logger"""
    level = LOG_LEVELS.get(level_name, logging.INFO)
    logger = logging.getLogger('omti')
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    if level == logging.DEBUG:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    else:
        handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)
    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='omti',
        description='Manage GitHub repositories and back up local or remote PostgreSQL databases',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a GitHub repository and push the current folder as the first commit
  cd my-project && omti repo create my-project .

  # Tag the latest commit of main
  omti repo tag v1.0.0 main ./my-project

  # Back up a database reachable from this machine
  omti db backup postgres:secret@localhost:5432/app ./backups

  # Back up a database on a remote server through an SSH tunnel
  omti db backup postgres:secret@localhost:5432/app ./backups --remote admin@192.168.1.10:5432

  # Show sample config
  omti --sample-config
        """
    )
    parser.add_argument('--log-level', choices=list(LOG_LEVELS), default='info',
                        help='Set log level (default: info)')
    parser.add_argument('--config', type=str, help='Path to JSON config file')
    parser.add_argument('--sample-config', action='store_true', help='Print sample configuration')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    # --log-level is also accepted after the subcommand; SUPPRESS keeps the
    # top-level default unless it is given there
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--log-level', choices=list(LOG_LEVELS), default=argparse.SUPPRESS,
                        help='Set log level (default: info)')

    commands = parser.add_subparsers(dest='command', metavar='{repo,db}')

    repo = commands.add_parser('repo', help='Manage GitHub repositories')
    repo_commands = repo.add_subparsers(dest='repo_command', metavar='{create,tag}')
    repo_commands.required = True

    create = repo_commands.add_parser(
        'create', parents=[common],
        help='Create a new GitHub repository and push local folder as the first commit')
    create.add_argument('repo_name', help='Repository name, optionally owner/name')
    create.add_argument('folder_path', help='Local folder to push')
    create.set_defaults(handler=cmd_repo_create)

    tag = repo_commands.add_parser(
        'tag', parents=[common],
        help='Create a new tag for the latest commit of a branch in the repository')
    tag.add_argument('tag_name')
    tag.add_argument('branch_name')
    tag.add_argument('folder_path', help='Local clone of the repository')
    tag.set_defaults(handler=cmd_repo_tag)

    db = commands.add_parser('db', help='Database-related operations')
    db_commands = db.add_subparsers(dest='db_command', metavar='{backup}')
    db_commands.required = True

    backup = db_commands.add_parser(
        'backup', parents=[common], help='Backup a PostgreSQL database, locally or over SSH',
        description='db_config: <username>:<password>@<host>:<port>/<dbname>')
    backup.add_argument('db_config', help='<username>:<password>@<host>:<port>/<dbname>')
    backup.add_argument('local_save_path', help='Directory the backup file is written to')
    backup.add_argument('--remote', type=str,
                        help='Remote connection in format <user>@<host>:<db_port>')
    backup.add_argument('--local-port', type=int,
                        help='Local forwarding port for the SSH tunnel (default: from config, 5433)')
    backup.set_defaults(handler=cmd_db_backup)

    return parser


def cmd_repo_create(args, config: OmtiConfig, runner: CommandRunner, logger: logging.Logger):
    logger.info("🚀 Starting the repository creation process")
    Preflight(runner, config.ssh_key_path, config.ssh_key_title,
              logger=logger).check_repo_environment()

    RepositoryManager(runner, logger=logger).create_and_push(args.repo_name, args.folder_path)
    logger.info("🎉 Repository creation process completed successfully!")


def cmd_repo_tag(args, config: OmtiConfig, runner: CommandRunner, logger: logging.Logger):
    logger.info("🚀 Starting the tagging process")
    Preflight(runner, config.ssh_key_path, config.ssh_key_title,
              logger=logger).check_repo_environment()

    RepositoryManager(runner, logger=logger).tag_branch(
        args.tag_name, args.branch_name, args.folder_path)


def cmd_db_backup(args, config: OmtiConfig, runner: CommandRunner, logger: logging.Logger):
    logger.info("🚀 Starting database backup process")

    try:
        conn = parse_connection_string(args.db_config)
    except ParseError as err:
        raise ParseError(f"Invalid database configuration format: {err}") from err
    remote = None
    if args.remote:
        try:
            remote = parse_remote_string(args.remote)
        except ParseError as err:
            raise ParseError(f"Invalid --remote format: {err}") from err
    logger.debug(f"Database: {conn.redacted()}")

    Preflight(runner, config.ssh_key_path, config.ssh_key_title,
              logger=logger).check_backup_environment(remote=remote is not None)

    tool = BackupTool(
        runner,
        forward_port=args.local_port or config.forward_port,
        dump_extension=config.dump_extension,
        ssh_key=config.ssh_key_path,
        tunnel_timeout=config.tunnel_timeout,
        logger=logger,
    )
    tool.backup(conn, args.local_save_path, remote=remote)
    logger.info("✅ Database backup completed successfully")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(args.log_level)

    if args.sample_config:
        print(sample_config())
        return 0

    if not getattr(args, 'handler', None):
        parser.print_help()
        return 1

    local_port = getattr(args, 'local_port', None)
    if local_port is not None and not 0 < local_port < 65536:
        parser.error(f"--local-port must be between 1 and 65535, got {local_port}")

    try:
        config = load_config_file(args.config) if args.config else OmtiConfig()
        runner = CommandRunner(logger=logger, timeout=config.command_timeout)
        args.handler(args, config, runner, logger)
        return 0

    except OmtiError as err:
        logger.error(f"❌ {err}")
        return 1
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 130
    except Exception as err:
        logger.error(f"❌ Unexpected error: {err}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
