#!/usr/bin/env python3
"""
Workstation Setup Wizard: SSH, Git, GPG & Toolchains for Ubuntu

A menu-driven terminal wizard that collects:
  1. Your identity (name + email)
  2. SSH key settings
  3. Git + GPG commit signing
  4. Optional language toolchains (NVM, GVM, rustup)

and then installs everything in one pass.

Usage:
    python3 workstation_wizard.py
"""

import logging
import os
import re
import subprocess
import sys
import getpass
import pwd
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.padding import Padding
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

console = Console()
log = logging.getLogger("workstation_wizard")


# ─── Paths & Constants ───────────────────────────────────────────────────────
SSH_DIR          = Path.home() / ".ssh"
SSH_KEY          = SSH_DIR / "id_ed25519"
SSH_AGENT_SCRIPT = Path.home() / ".bash_ssh"
BASHRC           = Path.home() / ".bashrc"
LOG_FILE         = Path.home() / ".cache" / "workstation-setup-wizard.log"

NVM_TAGS_URL      = "https://api.github.com/repos/nvm-sh/nvm/tags"
NVM_INSTALL_URL   = "https://raw.githubusercontent.com/nvm-sh/nvm/{tag}/install.sh"
GVM_INSTALLER_URL = "https://raw.githubusercontent.com/moovweb/gvm/master/binscripts/gvm-installer"
RUSTUP_URL        = "https://sh.rustup.rs"

CANCEL_KEY = "q"

SSH_SOURCE_LINE = "[[ -f ~/.bash_ssh ]] && . ~/.bash_ssh"

SSH_AGENT_BOOTSTRAP = """\
SSH_ENV="$HOME/.ssh/agent-environment"

function start_agent {
    echo "Initialising new SSH agent..."
    /usr/bin/ssh-agent | sed 's/^echo/#echo/' > "${SSH_ENV}"
    echo succeeded
    chmod 600 "${SSH_ENV}"
    . "${SSH_ENV}" > /dev/null
    /usr/bin/ssh-add;
}

# Source SSH settings, if applicable
if [ -f "${SSH_ENV}" ]; then
    . "${SSH_ENV}" > /dev/null
    ps -ef | grep ${SSH_AGENT_PID} | grep ssh-agent$ > /dev/null || {
        start_agent;
    }
else
    start_agent;
fi
"""


# ─── Handle curl | python3 ───────────────────────────────────────────────────
def reopen_tty():
    """Reattach stdin to the terminal when the script itself arrived on stdin."""
    if sys.stdin.isatty():
        return
    try:
        sys.stdin = open("/dev/tty", "r")
    except OSError:
        pass  # no controlling terminal (CI, pytest)


# ─── Logging ─────────────────────────────────────────────────────────────────
def setup_logging(log_file=None):
    """Warnings and errors go to the console, everything to the log file."""
    log_file = Path(os.environ.get("SETUP_WIZARD_LOG") or log_file or LOG_FILE)
    log.setLevel(logging.DEBUG)
    for h in log.handlers[:]:
        h.close()
        log.removeHandler(h)

    console_handler = RichHandler(console=console, show_path=False, markup=False)
    console_handler.setLevel(logging.WARNING)
    log.addHandler(console_handler)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
    except OSError as e:
        log.warning("Could not open log file %s: %s", log_file, e)
        return None
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S"
    ))
    log.addHandler(file_handler)
    return log_file


# ─── Shell Helpers ───────────────────────────────────────────────────────────
def sh(cmd):
    """Run a shell command, return stdout (empty string on failure)."""
    try:
        r = subprocess.run(cmd, shell=True, capture_output=True, text=True)
        return r.stdout.strip()
    except OSError:
        return ""


def sh_ok(cmd):
    """Return True if a shell command exits 0."""
    return subprocess.run(
        cmd, shell=True, capture_output=True, text=True
    ).returncode == 0


def capture(cmd):
    """Run an argv list without a shell, return stdout (empty string on failure)."""
    try:
        r = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True)
    except OSError:
        return ""
    return r.stdout.strip()


def cmd_exists(name):
    """Check if a command exists on PATH."""
    return sh_ok(f"which {name}")


def run(cmd, **kwargs):
    """Run an install command, raising CalledProcessError when it fails."""
    log.debug("Running: %s", cmd if isinstance(cmd, str) else " ".join(cmd))
    return subprocess.run(cmd, check=True, **kwargs)


# ─── Output Helpers ──────────────────────────────────────────────────────────
def phase(title, subtitle=""):
    text = f"[bold white]{title}[/]"
    if subtitle:
        text += f"\n[dim]{subtitle}[/]"
    console.print()
    console.print(Panel(text, box=box.ROUNDED, border_style="cyan", padding=(0, 2)))


def ok(msg):
    console.print(f"  [green]✓[/] {msg}")


def info(msg):
    console.print(f"  [cyan]›[/] {msg}")


def warn(msg):
    console.print(f"  [yellow]![/] {msg}")


def fail(msg):
    console.print(f"  [red]✗[/] {msg}")


def dim(msg):
    console.print(f"  [dim]{msg}[/]")


# ═════════════════════════════════════════════════════════════════════════════
BANNER = r"""
 __        __         _        _        _   _
 \ \      / /__  _ __| | _____| |_ __ _| |_(_) ___  _ __
  \ \ /\ / / _ \| '__| |/ / __| __/ _` | __| |/ _ \| '_ \
   \ V  V / (_) | |  |   <\__ \ || (_| | |_| | (_) | | | |
    \_/\_/ \___/|_|  |_|\_\___/\__\__,_|\__|_|\___/|_| |_|
                      Setup Wizard
"""


# ═════════════════════════════════════════════════════════════════════════════
#  Configuration State
# ═════════════════════════════════════════════════════════════════════════════
@dataclass
class ConfigState:
    """Every choice the operator makes during one session."""

    proceed_with_install: bool = True

    full_name: str = ""
    email: str = ""

    use_ssh: bool = True
    ssh_key_path: str = str(SSH_KEY)
    ssh_overwrite_existing: bool = False

    use_git: bool = True

    use_gpg: bool = True
    gpg_auto_sign_commits: bool = True
    gpg_passphrase: str = ""
    gpg_key_id: str = ""  # empty: generate a new key on install
    gpg_key_algorithm: str = "default"
    gpg_key_usage: str = "default"
    gpg_key_expiry: str = "never"
    gpg_public_key_export_path: str = ""

    use_nvm: bool = False
    nvm_node_version: str = "stable"

    use_gvm: bool = False
    gvm_go_version: str = "go1"

    use_rust: bool = False

    def __post_init__(self):
        if not self.gpg_public_key_export_path:
            self.gpg_public_key_export_path = str(Path.cwd() / "gpg-token.pub")

    @classmethod
    def from_host(cls, keyring):
        """Defaults seeded from the OS account and any existing GPG key."""
        name = account_display_name()
        return cls(
            full_name=name,
            email=keyring.find_email(name),
            gpg_key_id=keyring.find_key(name),
        )

    @property
    def identity(self):
        return f"{self.full_name} <{self.email}>"

    def flip(self, name):
        current = getattr(self, name)
        if not isinstance(current, bool):
            raise TypeError(f"{name} is not a boolean field")
        setattr(self, name, not current)


@dataclass(frozen=True)
class InstallPlan:
    """Read-only snapshot of a finished ConfigState, handed to the installer."""

    full_name: str
    email: str
    use_ssh: bool
    ssh_key_path: str
    ssh_overwrite_existing: bool
    use_git: bool
    use_gpg: bool
    gpg_auto_sign_commits: bool
    gpg_passphrase: str
    gpg_key_id: str
    gpg_key_algorithm: str
    gpg_key_usage: str
    gpg_key_expiry: str
    gpg_public_key_export_path: str
    use_nvm: bool
    nvm_node_version: str
    use_gvm: bool
    gvm_go_version: str
    use_rust: bool

    @classmethod
    def from_state(cls, state):
        return cls(**{f.name: getattr(state, f.name) for f in fields(cls)})

    @property
    def identity(self):
        return f"{self.full_name} <{self.email}>"

    @property
    def autosign(self):
        return self.use_git and self.use_gpg and self.gpg_auto_sign_commits


# ═════════════════════════════════════════════════════════════════════════════
#  Derived Menu Text
# ═════════════════════════════════════════════════════════════════════════════
def checkmark(flag):
    return "[X]" if flag else "[ ]"


def git_menu_label(state):
    if not state.use_git:
        return "Skip Git"
    if state.use_gpg and state.gpg_auto_sign_commits:
        return "Use Git + GPG Autosign"
    return "Use Git"


def languages_menu_label(state):
    enabled = []
    if state.use_gvm:
        enabled.append(f"Go ({state.gvm_go_version})")
    if state.use_rust:
        enabled.append("Rust (latest)")
    if state.use_nvm:
        enabled.append(f"Node ({state.nvm_node_version})")
    return "Languages: " + (", ".join(enabled) if enabled else "<none>")


# ═════════════════════════════════════════════════════════════════════════════
#  Host Discovery
# ═════════════════════════════════════════════════════════════════════════════
def account_display_name():
    """The GECOS full name of the current account, or "" if there is none."""
    try:
        gecos = pwd.getpwnam(getpass.getuser()).pw_gecos
    except (KeyError, OSError):
        return ""
    return gecos.split(",")[0]


class GpgKeyring:
    """
    Looks up existing secret keys with the gpg CLI.

    Both lookups return "" when gpg is not installed or nothing matches,
    so callers never have to care whether GnuPG is present yet.
    """

    def __init__(self, runner=capture, exists=cmd_exists):
        self._run = runner
        self._exists = exists

    def _list_secret_keys(self, identity):
        if not self._exists("gpg"):
            log.debug("gpg not on PATH; skipping key lookup for %r", identity)
            return ""
        return self._run(["gpg", "--list-secret-keys", "--keyid-format", "LONG", identity])

    def find_key(self, identity):
        for line in self._list_secret_keys(identity).split("\n"):
            line = line.strip()
            if line.startswith("sec"):
                m = re.search(r'/([A-F0-9]{8,})', line)
                if m:
                    return m.group(1)
        return ""

    def find_email(self, identity):
        for line in self._list_secret_keys(identity).split("\n"):
            line = line.strip()
            if line.startswith("uid"):
                m = re.search(r'<([^>]*)>', line)
                if m:
                    return m.group(1)
        return ""


# ═════════════════════════════════════════════════════════════════════════════
#  Menu Actions & Screens
# ═════════════════════════════════════════════════════════════════════════════
class Screen(Enum):
    ROOT = "root"
    USER = "user"
    SSH = "ssh"
    GIT = "git"
    GPG = "gpg"
    LANGUAGES = "languages"


class Exit(Enum):
    PROCEED = "proceed"
    ABORT = "abort"
    RETURN = "return"


@dataclass(frozen=True)
class Toggle:
    field: str


@dataclass(frozen=True)
class Edit:
    field: str
    title: str
    query: str


@dataclass(frozen=True)
class EditSecret:
    field: str
    message: str


@dataclass(frozen=True)
class Navigate:
    screen: Screen


@dataclass(frozen=True)
class Proceed:
    pass


@dataclass(frozen=True)
class Back:
    pass


class MenuItem(NamedTuple):
    key: str
    label: str
    action: object


def root_items(state):
    return [
        MenuItem("u", f"User: {state.identity}", Navigate(Screen.USER)),
        MenuItem("s", f"SSH: {state.ssh_key_path}" if state.use_ssh else "Skip SSH",
                 Navigate(Screen.SSH)),
        MenuItem("g", git_menu_label(state), Navigate(Screen.GIT)),
        MenuItem("p", "Use GPG" if state.use_gpg else "Skip GPG", Navigate(Screen.GPG)),
        MenuItem("l", languages_menu_label(state), Navigate(Screen.LANGUAGES)),
        MenuItem("x", "Continue to Installation", Proceed()),
    ]


def user_items(state):
    return [
        MenuItem("n", f"Name: {state.full_name}",
                 Edit("full_name", "Configure User", "What is your real name?")),
        MenuItem("e", f"Email: {state.email}",
                 Edit("email", "Configure User", "What is your email?")),
    ]


def ssh_items(state):
    items = [
        MenuItem("e", f"{checkmark(state.use_ssh)} Enable SSH installation & configuration",
                 Toggle("use_ssh")),
    ]
    if state.use_ssh:
        items.append(MenuItem(
            "t", f"SSH Key: {state.ssh_key_path}",
            Edit("ssh_key_path", "Configure SSH", "What is the SSH key file-path?"),
        ))
        if Path(state.ssh_key_path).expanduser().is_file():
            items.append(MenuItem(
                "o", f"{checkmark(state.ssh_overwrite_existing)} Overwrite existing SSH key",
                Toggle("ssh_overwrite_existing"),
            ))
    return items


def git_items(state):
    items = [
        MenuItem("e", f"{checkmark(state.use_git)} Install and configure Git",
                 Toggle("use_git")),
    ]
    if state.use_git and state.use_gpg:
        items.append(MenuItem(
            "s", f"{checkmark(state.gpg_auto_sign_commits)} Use GPG to auto-sign Git Commits",
            Toggle("gpg_auto_sign_commits"),
        ))
    return items


def gpg_items(state):
    items = [
        MenuItem("e", f"{checkmark(state.use_gpg)} Install and configure GPG",
                 Toggle("use_gpg")),
    ]
    if not state.use_gpg:
        return items

    items.append(MenuItem(
        "o", f"Output Pubkey: {state.gpg_public_key_export_path}",
        Edit("gpg_public_key_export_path", "GPG Pubkey",
             "Where do you want to save the exported GPG public key?"),
    ))
    if state.use_git:
        items.append(MenuItem(
            "s", f"{checkmark(state.gpg_auto_sign_commits)} Auto-sign Git commits",
            Toggle("gpg_auto_sign_commits"),
        ))
    if not state.gpg_key_id:
        items.append(MenuItem(
            "p", f"Password ({len(state.gpg_passphrase)} characters)",
            EditSecret("gpg_passphrase",
                       "Set the GPG Passphrase (or leave blank for no passphrase)"),
        ))
    return items


def language_items(state):
    items = [
        MenuItem("n", f"{checkmark(state.use_nvm)} Node Version Manager (NVM)",
                 Toggle("use_nvm")),
    ]
    if state.use_nvm:
        items.append(MenuItem(
            "v", f"    Node version: {state.nvm_node_version}",
            Edit("nvm_node_version", "Configure NVM", "Which Node version should NVM install?"),
        ))
    items.append(MenuItem("g", f"{checkmark(state.use_gvm)} Golang Version Manager (GVM)",
                          Toggle("use_gvm")))
    if state.use_gvm:
        items.append(MenuItem(
            "w", f"    Go version: {state.gvm_go_version}",
            Edit("gvm_go_version", "Configure GVM", "Which Go release prefix should GVM install?"),
        ))
    items.append(MenuItem("r", f"{checkmark(state.use_rust)} Rust (rustup)", Toggle("use_rust")))
    return items


def rediscover_gpg_key(state, keyring):
    state.gpg_key_id = keyring.find_key(state.identity)


class Menu(NamedTuple):
    title: str
    build: Callable
    cancel_label: str = "Back"
    on_exit: Optional[Callable] = None


MENUS = {
    Screen.ROOT: Menu("Setup Ubuntu", root_items, "Cancel"),
    Screen.USER: Menu("Configure User Information", user_items, on_exit=rediscover_gpg_key),
    Screen.SSH: Menu("Configure SSH", ssh_items),
    Screen.GIT: Menu("Configure Git", git_items),
    Screen.GPG: Menu("Configure GPG", gpg_items),
    Screen.LANGUAGES: Menu("Configure Installed Languages", language_items),
}


# ═════════════════════════════════════════════════════════════════════════════
#  Terminal Prompts
# ═════════════════════════════════════════════════════════════════════════════
class VerbatimPrompt(Prompt):
    """A Prompt that hands back exactly what was typed, surrounding spaces included."""

    def process_response(self, value):
        return value


class Terminal:
    """rich-backed prompts. Ctrl-D at any prompt means cancel."""

    def __init__(self, con=None):
        self.console = con or console

    def choose(self, title, items, cancel_label):
        table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
        table.add_column(style="bold cyan")
        table.add_column(style="white")
        for item in items:
            table.add_row(f"{item.key})", escape(item.label))
        table.add_row(f"{CANCEL_KEY})", f"[dim]{cancel_label}[/]")

        self.console.print()
        self.console.print(Panel(
            table, title=f"[bold]{title}[/]",
            box=box.ROUNDED, border_style="cyan", padding=(0, 2),
        ))
        try:
            choice = Prompt.ask(
                "  [bold]Make your choice[/]",
                choices=[item.key for item in items] + [CANCEL_KEY],
                show_choices=False,
                console=self.console,
            )
        except EOFError:
            return None
        return None if choice == CANCEL_KEY else choice

    def text(self, title, query, current):
        self.console.print()
        dim(f"{title}  (Enter keeps the shown value, Ctrl-D cancels)")
        try:
            return VerbatimPrompt.ask(
                f"  [bold]{escape(query)}[/]",
                default=current,
                show_default=bool(current),
                console=self.console,
            )
        except EOFError:
            return None

    def secret(self, title, message):
        try:
            return VerbatimPrompt.ask(
                f"  [bold]{title}[/] [dim]{escape(message)}[/]",
                password=True,
                console=self.console,
            )
        except EOFError:
            return None

    def message(self, title, text):
        self.console.print(Panel(
            text, title=f"[bold yellow] {title} [/]",
            border_style="yellow", box=box.ROUNDED, padding=(0, 2),
        ))


def capture_secret(ui, message):
    """Ask twice until both entries agree. None means the operator cancelled."""
    while True:
        first = ui.secret("Enter passphrase", message)
        if first is None:
            return None
        second = ui.secret("Confirm passphrase", message)
        if second is None:
            return None
        if first == second:
            return first
        ui.message("The passphrases did not match", "Your passphrase will not be saved")


# ═════════════════════════════════════════════════════════════════════════════
#  Navigator
# ═════════════════════════════════════════════════════════════════════════════
class Navigator:
    """Runs the menu tree against one ConfigState."""

    def __init__(self, state, ui, keyring):
        self.state = state
        self.ui = ui
        self.keyring = keyring

    def run(self, screen=Screen.ROOT):
        menu = MENUS[screen]
        while True:
            items = menu.build(self.state)
            key = self.ui.choose(menu.title, items, menu.cancel_label)
            if key is None:
                action = Back()
            else:
                action = next(item.action for item in items if item.key == key)

            outcome = self.dispatch(screen, action)
            if outcome is None:
                continue
            if outcome is Exit.RETURN and menu.on_exit is not None:
                menu.on_exit(self.state, self.keyring)
            return outcome

    def dispatch(self, screen, action):
        """Apply one action. Returns an Exit to leave the current screen."""
        if isinstance(action, Toggle):
            self.state.flip(action.field)
        elif isinstance(action, Edit):
            value = self.ui.text(action.title, action.query, getattr(self.state, action.field))
            if value is not None:
                setattr(self.state, action.field, value)
        elif isinstance(action, EditSecret):
            value = capture_secret(self.ui, action.message)
            if value is not None:
                setattr(self.state, action.field, value)
        elif isinstance(action, Navigate):
            self.run(action.screen)
        elif isinstance(action, Proceed):
            return Exit.PROCEED
        elif isinstance(action, Back):
            if screen is Screen.ROOT:
                self.state.proceed_with_install = False
                return Exit.ABORT
            return Exit.RETURN
        else:
            raise TypeError(f"Unknown menu action: {action!r}")
        return None


# ═════════════════════════════════════════════════════════════════════════════
#  Confirmation Gate
# ═════════════════════════════════════════════════════════════════════════════
def should_install(state):
    return state.proceed_with_install is True


# ═════════════════════════════════════════════════════════════════════════════
#  Installation
# ═════════════════════════════════════════════════════════════════════════════
class StepStatus(Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


def apt_install(*packages):
    run(["sudo", "apt-get", "install", "-y", *packages])


def append_once(path, line):
    """Append line to path unless it is already in there."""
    content = path.read_text() if path.exists() else ""
    if line in content:
        return False
    with open(path, "a") as f:
        if content and not content.endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    return True


def install_ssh(plan):
    if not plan.use_ssh:
        info("Skipping SSH configuration...")
        return StepStatus.SKIPPED

    info("Installing SSH configuration...")
    SSH_AGENT_SCRIPT.write_text(SSH_AGENT_BOOTSTRAP)
    if append_once(BASHRC, SSH_SOURCE_LINE):
        ok(f"ssh-agent bootstrap sourced from {BASHRC.name}")

    key = Path(plan.ssh_key_path).expanduser()
    pub = key.with_name(key.name + ".pub")
    if key.exists():
        if not plan.ssh_overwrite_existing:
            ok(f"Using existing key: {escape(str(key))}")
            return StepStatus.OK
        warn(f"Replacing existing SSH key: {escape(str(key))}")
        key.unlink()
        if pub.exists():
            pub.unlink()

    key.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    run(["ssh-keygen", "-o", "-a", "100", "-t", "ed25519",
         "-f", str(key), "-q", "-N", "", "-C", plan.identity])
    ok(f"SSH key generated: {escape(str(key))}")
    return StepStatus.OK


def install_git(plan):
    if not plan.use_git:
        info("Skipping Git installation...")
        return StepStatus.SKIPPED

    info("Installing Git...")
    apt_install("git")
    run(["git", "config", "--global", "user.name", plan.full_name])
    run(["git", "config", "--global", "user.email", plan.email])
    ok("Git configured")
    return StepStatus.OK


def install_gpg(plan, keyring=None):
    if not plan.use_gpg:
        info("Skipping GPG installation...")
        return StepStatus.SKIPPED

    keyring = keyring or GpgKeyring()
    info("Installing GPG key...")
    apt_install("gnupg2")

    key_id = plan.gpg_key_id
    if not key_id:
        run(["gpg", "--batch", "--passphrase", plan.gpg_passphrase,
             "--quick-gen-key", plan.identity,
             plan.gpg_key_algorithm, plan.gpg_key_usage, plan.gpg_key_expiry])
        key_id = keyring.find_key(plan.identity)
        if not key_id:
            fail(f"No GPG key found for {escape(plan.identity)} after generation")
            return StepStatus.FAILED
        ok(f"GPG key created: {key_id}")

    armor = run(["gpg", "--armor", "--export", key_id],
                capture_output=True, text=True).stdout
    Path(plan.gpg_public_key_export_path).expanduser().write_text(armor)
    ok(f"Exported GPG public key to: {escape(plan.gpg_public_key_export_path)}")

    if cmd_exists("git"):
        run(["git", "config", "--global", "gpg.program", "gpg2"])
        run(["git", "config", "--global", "user.signingkey", key_id])
        if plan.autosign:
            run(["git", "config", "--global", "commit.gpgsign", "true"])
        ok("Git signing key configured")
    return StepStatus.OK


def install_nvm(plan):
    if not plan.use_nvm:
        info("Skipping NVM installation...")
        return StepStatus.SKIPPED

    info("Installing NVM...")
    apt_install("jq")
    tag = sh(f"wget -q -O - '{NVM_TAGS_URL}' | jq -r '.[0].name'")
    if not tag:
        fail("Could not determine the latest NVM release")
        return StepStatus.FAILED
    run(f"wget -q -O - '{NVM_INSTALL_URL.format(tag=tag)}' | bash", shell=True)
    run(["bash", "-i", "-c", f"nvm install '{plan.nvm_node_version}'"])
    ok(f"NVM {tag} installed with Node {escape(plan.nvm_node_version)}")
    return StepStatus.OK


def pick_go_release(listing, wanted):
    """Newest non-beta go* release in `gvm listall` output containing wanted."""
    releases = [
        line.split()[0] for line in listing.splitlines()
        if line.split() and line.split()[0].startswith("go")
    ]
    matches = [r for r in releases if "beta" not in r and wanted in r]
    return matches[-1] if matches else ""


def install_gvm(plan):
    if not plan.use_gvm:
        info("Skipping GVM installation...")
        return StepStatus.SKIPPED

    info("Installing GVM...")
    apt_install("binutils", "make", "gcc", "curl", "bison")
    run(f"wget -q -O - '{GVM_INSTALLER_URL}' | bash", shell=True)
    listing = run(["bash", "-i", "-c", "gvm listall"],
                  capture_output=True, text=True).stdout
    version = pick_go_release(listing, plan.gvm_go_version)
    if not version:
        fail(f"No Go release matches {escape(repr(plan.gvm_go_version))}")
        return StepStatus.FAILED
    run(["bash", "-i", "-c", f"gvm install '{version}' -B"])
    ok(f"GVM installed with {escape(version)}")
    return StepStatus.OK


def install_rust(plan):
    if not plan.use_rust:
        info("Skipping Rust-Up installation...")
        return StepStatus.SKIPPED

    info("Installing Rust-Up...")
    run(f"wget --https-only --secure-protocol=TLSv1_2 -q -O - '{RUSTUP_URL}' | sh",
        shell=True)
    ok("rustup installed")
    return StepStatus.OK


INSTALL_STEPS = [
    ("SSH", install_ssh),
    ("Git", install_git),
    ("GPG", install_gpg),
    ("Node (NVM)", install_nvm),
    ("Go (GVM)", install_gvm),
    ("Rust", install_rust),
]


def run_installation(plan):
    """Run every step in order. A failed step never stops the ones after it."""
    results = []
    for name, step in INSTALL_STEPS:
        phase(name)
        try:
            status = step(plan)
        except (subprocess.CalledProcessError, OSError) as e:
            log.error("%s step failed: %s", name, e)
            status = StepStatus.FAILED
        log.info("%s: %s", name, status.value)
        results.append((name, status))
    return results


def summary(results):
    table = Table(box=box.ROUNDED, border_style="dim", padding=(0, 2))
    table.add_column("Step", style="white")
    table.add_column("Status")
    icons = {
        StepStatus.OK: "[green]✓ done[/]",
        StepStatus.SKIPPED: "[dim]- skipped[/]",
        StepStatus.FAILED: "[red]✗ failed[/]",
    }
    for name, status in results:
        table.add_row(name, icons[status])
    console.print()
    console.print(Padding(table, (0, 4)))


# ═════════════════════════════════════════════════════════════════════════════
#  Main
# ═════════════════════════════════════════════════════════════════════════════
def main():
    try:
        reopen_tty()
        setup_logging()

        console.clear()
        console.print(Panel(
            f"[bold bright_cyan]{BANNER}[/]\n"
            "  [white]SSH, Git, GPG and language toolchains for Ubuntu[/]\n",
            box=box.DOUBLE, border_style="bright_blue", padding=(0, 2),
        ))

        keyring = GpgKeyring()
        state = ConfigState.from_host(keyring)
        Navigator(state, Terminal(), keyring).run()

        if not should_install(state):
            console.print("\n  Cancelled installation\n")
            sys.exit(1)

        results = run_installation(InstallPlan.from_state(state))
        summary(results)

        if any(status is StepStatus.FAILED for _, status in results):
            warn("Some steps failed. Details are in the log above.")
            sys.exit(2)
        console.print()
        ok("[bold]Installation complete; a reboot may be required[/]")

    except KeyboardInterrupt:
        console.print("\n\n  [dim]Cancelled. Run again whenever you're ready.[/]\n")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n  [red]Something broke: {e}[/]")
        console.print("  [dim]Re-run the wizard. It's safe to retry.[/]\n")
        raise


if __name__ == "__main__":
    main()
