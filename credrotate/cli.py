"""
Command line entry point.

    credrotate <username> <password> [namespace]

Exit status is 0 when the password was rotated and verified, 1 otherwise.
"""

import sys
from typing import Optional

import click
from dotenv import load_dotenv

from credrotate import __version__
from credrotate.config import EnvConfigProvider
from credrotate.config.provider import HASHER_BACKENDS
from credrotate.exceptions import RotationError
from credrotate.logging_config import configure_logging
from credrotate.modules.workflow import AccountCredential, RotationWorkflow

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _usage_error(message: str) -> None:
    click.echo(click.style(f"❌ Error: {message}", fg="red"), err=True)
    click.echo(click.style("Usage: credrotate <username> <password> [namespace]", fg="yellow"), err=True)
    click.echo(click.style("Example: credrotate alice 's3cret-passw0rd' argocd", fg="yellow"), err=True)
    sys.exit(1)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("username", required=False)
@click.argument("password", required=False)
@click.argument("namespace", required=False)
@click.option("--kubectl", "kubectl_binary", help="kubectl binary to use.")
@click.option("--hasher", type=click.Choice(HASHER_BACKENDS), help="Password hashing backend.")
@click.option("--rollout-timeout", help="How long to wait for the server rollout (kubectl duration).")
@click.option(
    "--recovery-dir",
    type=click.Path(file_okay=False),
    help="Directory that keeps the secret backup after a failed or --keep-backup run.",
)
@click.option("--keep-backup/--no-keep-backup", default=None, help="Keep the secret backup after success.")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), help="Logging level.")
@click.option("--no-color", is_flag=True, help="Disable coloured output.")
@click.version_option(__version__, prog_name="credrotate")
def main(
    username: Optional[str],
    password: Optional[str],
    namespace: Optional[str],
    kubectl_binary: Optional[str],
    hasher: Optional[str],
    rollout_timeout: Optional[str],
    recovery_dir: Optional[str],
    keep_backup: Optional[bool],
    log_level: Optional[str],
    no_color: bool,
):
    """Rotate the password of an Argo CD local account."""
    if username is None or password is None:
        _usage_error("Missing arguments")

    load_dotenv()

    try:
        config = EnvConfigProvider().get_rotation_config().with_overrides(
            namespace=namespace,
            kubectl_binary=kubectl_binary,
            hasher=hasher,
            rollout_timeout=rollout_timeout,
            recovery_dir=recovery_dir,
            keep_backup=keep_backup,
            log_level=log_level.upper() if log_level else None,
            use_color=False if no_color else None,
        )
    except ValueError as e:
        _usage_error(str(e))

    configure_logging(config.log_level, config.use_color, secrets=[password])

    workflow = RotationWorkflow(config)
    try:
        workflow.run(AccountCredential(username=username, password=password))
    except RotationError as e:
        reporter = workflow.reporter
        reporter.error(e.message)
        reporter.detail(f"Aborted during the {e.step} step")
        if e.restore_command:
            reporter.heading("Restore from backup:")
            reporter.detail(e.restore_command)
        sys.exit(1)
    except KeyboardInterrupt:
        workflow.reporter.error("Interrupted")
        sys.exit(1)


if __name__ == "__main__":
    main()
