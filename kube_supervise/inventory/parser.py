"""
Ansible INI Inventory Parser

Supports the subset of the Ansible INI inventory format needed to describe
supervised hosts:

    [appservers]
    app1 ansible_host=10.0.0.1 ansible_user=deploy
    app2:2222 ansible_ssh_private_key_file=~/.ssh/app.pem

    [winservers]
    win1 ansible_connection=winrm ansible_password="s3cret"

    [appservers:vars]
    ansible_user=deploy

    [everything:children]
    appservers
    winservers

Hosts keep the order in which they first appear in the file.
"""

import re
import shlex
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from ..configs.types import HostRecord, HostSet, Transport
from ..errors import InventoryError

ALL_GROUP = "all"
UNGROUPED_GROUP = "ungrouped"

ADDRESS_VARS = ("ansible_host", "ansible_ssh_host")
PORT_VARS = ("ansible_port", "ansible_ssh_port")
USER_VARS = ("ansible_user", "ansible_ssh_user")
PRIVATE_KEY_VARS = ("ansible_ssh_private_key_file", "ansible_private_key_file")
PASSWORD_VARS = ("ansible_password", "ansible_ssh_pass", "ansible_winrm_password")
CONNECTION_VAR = "ansible_connection"

_CONNECTION_TRANSPORTS = {
    "ssh": Transport.SSH,
    "paramiko": Transport.SSH,
    "smart": Transport.SSH,
    "winrm": Transport.WINRM,
}

_RANGE_PATTERN = re.compile(r"\[[^\]]*:[^\]]*\]")
_TRAILING_COMMENT = re.compile(r"\s+[#;].*$")


def _strip_comment(line: str) -> str:
    return _TRAILING_COMMENT.sub("", line)


def _first(variables: Dict[str, str], names: Tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = variables.get(name)
        if value:
            return value
    return None


class InventoryParser:
    """Parses one inventory file into a HostSet"""

    def __init__(self, source: str = "<string>"):
        self.source = source
        self._host_order: List[str] = []
        self._host_vars: Dict[str, Dict[str, str]] = {}
        self._group_order: List[str] = []
        self._group_hosts: Dict[str, List[str]] = {}
        self._group_vars: Dict[str, Dict[str, str]] = {}
        self._group_children: Dict[str, List[str]] = {}

    @classmethod
    def parse_file(cls, path: str) -> HostSet:
        try:
            with open(path, 'r') as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise InventoryError(f"Cannot read inventory {path}: {e}") from e
        return cls(source=path).parse(text)

    def parse(self, text: str) -> HostSet:
        group = UNGROUPED_GROUP
        section = "hosts"

        for lineno, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line[0] in "#;":
                continue

            if line.startswith("["):
                group, section = self._parse_section(_strip_comment(line), lineno)
                self._declare_group(group)
                continue

            if section == "hosts":
                self._parse_host_line(group, line, lineno)
            elif section == "vars":
                key, value = self._parse_assignment(line, lineno)
                self._group_vars.setdefault(group, {})[key] = value
            else:
                child = line.split()[0]
                self._declare_group(child)
                if child not in self._group_children[group]:
                    self._group_children[group].append(child)

        hosts = self._build_hosts()
        logger.debug(f"Loaded {len(hosts)} hosts from inventory {self.source}")
        return hosts

    def _error(self, lineno: int, message: str) -> InventoryError:
        return InventoryError(f"{self.source}:{lineno}: {message}")

    def _parse_section(self, line: str, lineno: int) -> Tuple[str, str]:
        if not line.endswith("]"):
            raise self._error(lineno, f"unterminated section header {line!r}")
        name = line[1:-1].strip()
        section = "hosts"
        if ":" in name:
            name, suffix = name.split(":", 1)
            if suffix not in ("vars", "children"):
                raise self._error(lineno, f"unknown section type {suffix!r}")
            section = suffix
        if not name:
            raise self._error(lineno, "empty group name")
        return name, section

    def _declare_group(self, group: str) -> None:
        if group not in self._group_hosts:
            self._group_order.append(group)
            self._group_hosts[group] = []
            self._group_children[group] = []

    def _split(self, line: str, lineno: int) -> List[str]:
        try:
            return shlex.split(line, comments=True)
        except ValueError as e:
            raise self._error(lineno, str(e)) from e

    def _parse_assignment(self, line: str, lineno: int) -> Tuple[str, str]:
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise self._error(lineno, f"expected key=value, got {line!r}")
        tokens = self._split(value, lineno)
        return key, " ".join(tokens)

    def _parse_host_line(self, group: str, line: str, lineno: int) -> None:
        tokens = self._split(line, lineno)
        if not tokens:
            return
        pattern, assignments = tokens[0], tokens[1:]

        if _RANGE_PATTERN.search(pattern):
            raise self._error(lineno, f"host ranges are not supported: {pattern!r}")

        name = pattern
        variables: Dict[str, str] = {}
        if pattern.count(":") == 1:
            name, port = pattern.split(":")
            if not port.isdigit():
                raise self._error(lineno, f"invalid port in {pattern!r}")
            variables["ansible_port"] = port
        if not name:
            raise self._error(lineno, f"invalid host {pattern!r}")

        for token in assignments:
            key, sep, value = token.partition("=")
            if not sep or not key:
                raise self._error(lineno, f"expected key=value, got {token!r}")
            variables[key] = value

        self._declare_group(group)
        if name not in self._host_vars:
            self._host_order.append(name)
            self._host_vars[name] = {}
        self._host_vars[name].update(variables)
        if name not in self._group_hosts[group]:
            self._group_hosts[group].append(name)

    def _expand_group(self, group: str, trail: Tuple[str, ...] = ()) -> Set[str]:
        if group in trail:
            cycle = " -> ".join(trail + (group,))
            raise InventoryError(f"{self.source}: group children form a cycle: {cycle}")
        members = set(self._group_hosts.get(group, []))
        for child in self._group_children.get(group, []):
            members |= self._expand_group(child, trail + (group,))
        return members

    def _build_hosts(self) -> HostSet:
        membership: Dict[str, Set[str]] = {
            group: self._expand_group(group) for group in self._group_order
        }

        records = []
        for name in self._host_order:
            groups = {g for g, members in membership.items() if name in members}
            groups.discard(ALL_GROUP)
            if not groups - {UNGROUPED_GROUP}:
                groups.add(UNGROUPED_GROUP)
            else:
                groups.discard(UNGROUPED_GROUP)
            groups.add(ALL_GROUP)

            variables: Dict[str, str] = dict(self._group_vars.get(ALL_GROUP, {}))
            for group in self._group_order:
                if group != ALL_GROUP and group in groups:
                    variables.update(self._group_vars.get(group, {}))
            variables.update(self._host_vars[name])

            records.append(self._make_record(name, groups, variables))

        return HostSet(records)

    def _make_record(self, name: str, groups: Set[str], variables: Dict[str, str]) -> HostRecord:
        transport = None
        connection = variables.get(CONNECTION_VAR) or None
        if connection:
            transport = _CONNECTION_TRANSPORTS.get(connection.lower())
            if transport is None:
                # Only an error once the host is selected for supervision
                logger.debug(f"{self.source}: host {name!r} uses unsupported connection {connection!r}")

        return HostRecord(
            name=name,
            address=_first(variables, ADDRESS_VARS) or name,
            port=_first(variables, PORT_VARS),
            transport=transport,
            connection=connection,
            user=_first(variables, USER_VARS),
            private_key=_first(variables, PRIVATE_KEY_VARS),
            password=_first(variables, PASSWORD_VARS),
            groups=frozenset(groups),
            variables=variables,
        )
