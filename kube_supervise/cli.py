"""
Command Line Interface for kube-supervise

Supervises processes on hosts outside Kubernetes from pods inside it, one pod
per host of an Ansible inventory group.

Provides commands for:
- rc: Create or scale the supervisor replica group to match the inventory
- pod: Run the supervised command on the host owned by this pod
- run: Run a command on an explicitly given host, without an inventory
"""

import argparse
import sys
from dataclasses import replace
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from . import __version__
from .assignment import AssignmentResolver, Synchronizer
from .cluster import KubernetesReplicaGroupGateway, ReplicaGroupGateway, default_namespace
from .configs import (
    ConfigLoader,
    GroupKind,
    HostRecord,
    SuperviseConfig,
    Transport,
    expand,
    expand_and_verify,
)
from .dispatcher import Dispatcher
from .scripts import generate_shell_script
from .transport import get_transport


def setup_logger(verbose: bool = False):
    """Setup logger configuration"""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<level>{message}</level>",
        level=level,
    )


def fail(step: str, error: Exception) -> int:
    kind = getattr(error, "kind", type(error).__name__)
    logger.error(f"{step} failed: {kind}: {error}")
    return 1


def make_gateway(kind: GroupKind) -> ReplicaGroupGateway:
    return KubernetesReplicaGroupGateway(kind=kind)


def load_template(path: str) -> Dict[str, Any]:
    """Load a replica group manifest from a YAML file"""
    with open(path, 'r') as f:
        manifest = yaml.safe_load(f)
    if not isinstance(manifest, dict):
        raise ValueError(f"Template {path} does not contain a manifest object")
    return manifest


def build_config(args) -> SuperviseConfig:
    """Config file, then KUBE_SUPERVISE_* environment, then command-line flags"""
    config_path = getattr(args, "config", None)
    base = ConfigLoader.load_from_file(config_path) if config_path else None
    config = ConfigLoader.from_env(base)

    defaults = config.defaults
    port = expand(getattr(args, "port", None), "port")
    if port:
        defaults = replace(defaults, port=port)
    if getattr(args, "winrm", False):
        defaults = replace(defaults, transport=Transport.WINRM)
    for field_name, flag in (("user", "user"), ("private_key", "privatekey"), ("password", "password")):
        value = expand(getattr(args, flag, None), flag)
        if value:
            defaults = replace(defaults, **{field_name: value})

    overrides: Dict[str, Any] = {"defaults": defaults}
    for field_name, flag in (
        ("inventory_path", "inventory"),
        ("group_name", "rc"),
        ("template_path", "template"),
        ("namespace", "namespace"),
        ("identity", "identity"),
        ("shell_script_path", "bash"),
        ("hosts_selector", "hosts"),
    ):
        value = expand(getattr(args, flag, None), flag)
        if value:
            overrides[field_name] = value

    kind = getattr(args, "kind", None)
    if kind:
        overrides["group_kind"] = GroupKind(kind)
    retry_timeout = getattr(args, "retry_timeout", None)
    if retry_timeout is not None:
        overrides["assignment_retry_timeout_seconds"] = float(retry_timeout)

    return replace(config, **overrides)


def resolve_namespace(config: SuperviseConfig) -> str:
    return config.namespace or default_namespace()


# === RC Command ===

def rc_command(args):
    """Create or scale the supervisor replica group"""
    setup_logger(args.verbose)

    try:
        config = build_config(args)
        selector = expand_and_verify(config.hosts_selector, "hosts")
        template = load_template(config.template_path) if config.template_path else None
        name = config.group_name
        if not name and template:
            name = template.get("metadata", {}).get("name")
        name = expand_and_verify(name, "rc")
        namespace = resolve_namespace(config)
    except (ValueError, OSError, yaml.YAMLError) as e:
        return fail("Configuration", e)

    try:
        synchronizer = Synchronizer(make_gateway(config.group_kind))
        result = synchronizer.reconcile(
            config.inventory_path,
            selector,
            namespace,
            name,
            template=template,
            timeout=config.api_timeout_seconds,
        )
    except Exception as e:
        return fail("Reconcile", e)

    logger.info(
        f"{config.group_kind.value} {namespace}/{name}: {result.action} "
        f"({result.host_count} hosts, delta {result.delta:+d})"
    )
    return 0


# === Pod Command ===

def pod_command(args):
    """Run the supervised command on the host this pod owns"""
    setup_logger(args.verbose)

    try:
        config = build_config(args)
        selector = expand_and_verify(config.hosts_selector, "hosts")
        name = expand_and_verify(config.group_name, "rc")
        identity = expand_and_verify(config.identity, "identity")
        namespace = resolve_namespace(config)
        command = " ".join(args.remote_command)
        if not command:
            raise ValueError("No parameter supplied for: command")
    except (ValueError, OSError) as e:
        return fail("Configuration", e)

    logger.info(f"running command on a host from {selector} and command `{command}`")

    dispatcher = Dispatcher(
        make_gateway(config.group_kind),
        config.defaults,
        api_timeout=config.api_timeout_seconds,
        connect_timeout=config.connect_timeout_seconds,
    )

    try:
        descriptor = dispatcher.wait_for_assignment(
            config.inventory_path,
            selector,
            namespace,
            name,
            identity,
            retry_timeout=config.assignment_retry_timeout_seconds,
            retry_interval=config.assignment_retry_interval_seconds,
        )
    except Exception as e:
        return fail("Host assignment", e)

    if config.shell_script_path:
        try:
            generate_shell_script(config.shell_script_path, descriptor.transport, selector)
        except OSError as e:
            logger.error(f"Failed to generate shell script at {config.shell_script_path} due to: {e}")

    try:
        result = dispatcher.run_on(descriptor, command)
    except Exception as e:
        return fail("Remote command", e)

    if not result.success:
        logger.error(f"Remote command on {result.host} exited with {result.return_code}")
        return 1
    return 0


# === Run Command ===

def run_command(args):
    """Run a command on a given host without an inventory"""
    setup_logger(args.verbose)
    logger.info("Running kube-supervise!")

    try:
        config = build_config(args)
        host = expand_and_verify(args.host, "host")
        command = expand_and_verify(args.command, "command")
        descriptor = AssignmentResolver.resolve_connection(
            HostRecord(name=host, address=host),
            config.defaults,
        )
    except Exception as e:
        return fail("Configuration", e)

    try:
        result = get_transport(descriptor.transport, config.connect_timeout_seconds).run(descriptor, command)
    except Exception as e:
        return fail("Remote command", e)

    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kube-supervise",
        description="Supervise processes on hosts outside Kubernetes from pods inside it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Flag values may reference environment variables, e.g. --rc '$KUBE_SUPERVISE_RC'.

Examples:
  # Create or scale the supervisor StatefulSet for [appservers]
  kube-supervise rc appservers --inventory inventory --template rc.yml

  # Inside each supervisor pod: run the command on this pod's host
  kube-supervise pod --inventory /etc/inventory --rc supervisors appservers java -jar app.jar

  # Run a command on one host directly
  kube-supervise run --host 10.0.0.5 --user deploy --privatekey ~/.ssh/id_rsa --command uptime
        """
    )

    # Global arguments
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--debug", "--verbose", dest="verbose", action="store_true",
                        help="Enable verbose debugging output")
    parser.add_argument("-c", "--config", help="Optional JSON configuration file")
    parser.add_argument("--port", help="Default port for remote connections")

    subparsers = parser.add_subparsers(dest="command_name", required=True)

    # RC command
    rc_parser = subparsers.add_parser(
        "rc", help="Create or scale the supervisor replica group for some inventory hosts"
    )
    rc_parser.add_argument("hosts", help="Inventory group to supervise")
    rc_parser.add_argument("--inventory", default="inventory", help="The location of your Ansible inventory file")
    rc_parser.add_argument("--rc", default="$KUBE_SUPERVISE_RC", help="Name of the supervisor replica group")
    rc_parser.add_argument("--template", help="YAML manifest used to create the group if it does not exist")
    rc_parser.add_argument("--kind", choices=[k.value for k in GroupKind], help="Kind of replica group")
    rc_parser.add_argument("--namespace", default="$KUBE_SUPERVISE_NAMESPACE", help="Kubernetes namespace")
    rc_parser.set_defaults(func=rc_command)

    # Pod command
    pod_parser = subparsers.add_parser(
        "pod", help="Run the supervised command on the inventory host owned by this pod"
    )
    pod_parser.add_argument("hosts", help="Inventory group to supervise")
    pod_parser.add_argument("remote_command", nargs=argparse.REMAINDER, help="Command to run on the host")
    pod_parser.add_argument("--inventory", default="inventory", help="The location of your Ansible inventory file")
    pod_parser.add_argument("--rc", default="$KUBE_SUPERVISE_RC", help="Name of the supervisor replica group")
    pod_parser.add_argument("--kind", choices=[k.value for k in GroupKind], help="Kind of replica group")
    pod_parser.add_argument("--namespace", default="$KUBE_SUPERVISE_NAMESPACE", help="Kubernetes namespace")
    pod_parser.add_argument("--identity", default="$HOSTNAME", help="This pod's name")
    pod_parser.add_argument("--password", default="$KUBE_SUPERVISE_PASSWORD", help="The password used for WinRM connections")
    pod_parser.add_argument("--winrm", action="store_true", help="Use WinRM instead of SSH by default")
    pod_parser.add_argument("--bash", default="$KUBE_SUPERVISE_BASH",
                            help="Generate a script at this path for opening a shell on the remote machine")
    pod_parser.add_argument("--retry-timeout", type=float, dest="retry_timeout",
                            help="Seconds to wait for a host assignment")
    pod_parser.set_defaults(func=pod_command)

    # Run command
    run_parser = subparsers.add_parser("run", help="Run a command on a given host without an inventory")
    run_parser.add_argument("--host", default="$KUBE_SUPERVISE_HOST", help="The host for the remote connection")
    run_parser.add_argument("--user", default="$KUBE_SUPERVISE_USER", help="The user for the remote connection")
    run_parser.add_argument("--privatekey", default="$KUBE_SUPERVISE_PRIVATEKEY", help="The private key used for SSH")
    run_parser.add_argument("--password", help="The password if using WinRM")
    run_parser.add_argument("--command", default="$KUBE_SUPERVISE_COMMAND", help="The remote command to invoke")
    run_parser.add_argument("--winrm", action="store_true", help="Use WinRM instead of SSH")
    run_parser.set_defaults(func=run_command)

    return parser


def main(argv: Optional[list] = None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if hasattr(args, "func"):
        sys.exit(args.func(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
