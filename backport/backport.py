#!/usr/bin/env python3
#  -*- coding: utf-8 -*-

import click
import collections
import enum
import json
import os
import subprocess
import re
import requests
import toml
import urllib.parse

from . import __version__


UPSTREAM_ORG = "cockroachdb"
UPSTREAM_REPO = "cockroach"
UPSTREAM_FETCH_URL = f"https://github.com/{UPSTREAM_ORG}/{UPSTREAM_REPO}.git"
GITHUB_API_URL = "https://api.github.com"

COMPARE_URL_TEMPLATE = ("https://github.com/{org}/{repo}/compare/{base}...{username}:{head}?{query}")

REMOTE_CFG_KEY = "cockroach.remote"
TOKEN_CFG_KEY = "cockroach.githubToken"

CONFIG_FILE_NAME = ".backport.toml"
URL_FILE_NAME = "BACKPORT_URL"
CHERRY_PICK_HEAD = "CHERRY_PICK_HEAD"

PER_PAGE = 100

DEFAULT_CONFIG = collections.ChainMap(
    {
        "default_branch": "master",
        "release_prefix": "release-",
        "cc": "@cockroachdb/release",
    }
)

USAGE = """usage: backport [-f] [-c <commit>] [-r <release>] <pull-request>...
   or: backport [--continue|--abort|--status]"""

RATE_LIMIT_HINT = f"""unauthenticated GitHub requests are subject to a very strict rate
limit. Please configure backport with a personal access token:

    $ git config {TOKEN_CFG_KEY} TOKEN

For help creating a personal access token, see https://goo.gl/Ep2E6x."""

CHERRY_PICK_HINT = """Automatic cherry-picking failed. This usually indicates that manual
conflict resolution is required. Run 'backport --continue' to resume
backporting. To give up instead, run 'backport --abort'."""

MISSING_REMOTE_HINT = f"""set {REMOTE_CFG_KEY} to the name of the Git remote to push
backports to. For example:

    $ git config {REMOTE_CFG_KEY} origin
"""


WORKFLOW_STATES = enum.Enum("Workflow states",
    """
    IDLE
    SELECTING
    PICKING
    CONFLICTED
    FINALIZING
    """)


class BackportException(click.ClickException):
    """A fatal error, optionally carrying a remediation hint.

    Click's standalone mode catches it at the top of the command, calls
    show() and exits with exit_code.
    """

    exit_code = 1

    def __init__(self, message, hint=None):
        super().__init__(message)
        self.hint = hint

    def show(self, file=None):
        err = file is None
        click.echo(f"fatal: {self.format_message()}", file=file, err=err)
        if self.hint:
            click.echo(f"hint: {self.hint}", file=file, err=err)


class RateLimitException(BackportException):
    def __init__(self, message):
        super().__init__(message, hint=RATE_LIMIT_HINT)


class CherryPickException(BackportException):
    def __init__(self, message):
        super().__init__(message, hint=CHERRY_PICK_HINT)


#----------------------------------------------------------------------------------------------

class PullRequest:
    def __init__(self, number, title="", body="", base_branch="", commits=()):
        self.number = number
        self.title = title
        self.body = body
        self.base_branch = base_branch
        self.commits = list(commits)
        # Everything is backported unless the user says otherwise
        self.selected_commits = list(commits)

    def __repr__(self):
        return f"PullRequest(#{self.number}, {len(self.selected_commits)}/{len(self.commits)} selected)"


def quote(text):
    """Double-quote text, escaping embedded quotes and control characters."""
    return json.dumps(text, ensure_ascii=False)


class PullRequests(list):
    """Pull requests in the order they were given on the command line."""

    def select_commits(self, refs):
        select_commits(self, refs)

    def selected_commits(self):
        return [commit for pr in self for commit in pr.selected_commits]

    def selected_prs(self):
        return PullRequests(pr for pr in self if pr.selected_commits)

    def title(self, release_branch):
        prs = self.selected_prs()
        if len(prs) == 1:
            return f"{release_branch}: {prs[0].title}"
        return f"{release_branch}: TODO"

    def message(self, cc=DEFAULT_CONFIG["cc"]):
        prs = self.selected_prs()
        lines = []
        if len(prs) == 1:
            pr = prs[0]
            lines.append(f"Backport {len(pr.selected_commits)}/{len(pr.commits)} commits from #{pr.number}.")
        else:
            lines.append("Backport:")
            for pr in prs:
                lines.append(f'  * {len(pr.selected_commits)}/{len(pr.commits)} commits from {quote(pr.title)} (#{pr.number})')
            lines.append("")
            lines.append("Please see individual PRs for details.")
        if cc:
            lines.append("")
            lines.append(f"/cc {cc}")
        if len(prs) == 1:
            lines += ["", "---", "", prs[0].body]
        return "\n".join(lines) + "\n"


def select_commits(pull_requests, refs):
    """
    Narrow down the selected commits of each PR using commit refs.

    A ref is a commit SHA prefix to include, or a '!'-prefixed one to exclude.
    If any ref is an include, only included commits are selected; excludes are
    then removed from that selection. Every ref must match exactly one commit.

    Nothing is modified unless every ref resolves.
    """
    include_refs = [ref for ref in refs if not ref.startswith("!")]
    exclude_refs = [ref[1:] for ref in refs if ref.startswith("!")]

    if include_refs:
        selected = [[] for _ in pull_requests]
        for ref in include_refs:
            i, commit = _match_commit(ref, [pr.commits for pr in pull_requests])
            if commit not in selected[i]:
                selected[i].append(commit)
        # keep the order the commits were made in, not the order they were named in
        for i, pr in enumerate(pull_requests):
            selected[i].sort(key=pr.commits.index)
    else:
        selected = [list(pr.selected_commits) for pr in pull_requests]

    for ref in exclude_refs:
        i, commit = _match_commit(ref, selected)
        selected[i].remove(commit)

    for pr, commits in zip(pull_requests, selected):
        pr.selected_commits = commits


def _match_commit(ref, commit_lists):
    matches = [(i, commit)
               for i, commits in enumerate(commit_lists)
               for commit in commits
               if commit.startswith(ref)]
    if not matches:
        raise BackportException(f'commit "{ref}" was not found in any of the specified PRs')
    if len(matches) > 1:
        raise BackportException(f'commit ref "{ref}" is ambiguous')
    return matches[0]


#----------------------------------------------------------------------------------------------

class GitHub:
    """Read-only access to the upstream repository through the GitHub REST API."""

    def __init__(self, token=None, api_url=GITHUB_API_URL):
        self.repo_url = f"{api_url.rstrip('/')}/repos/{UPSTREAM_ORG}/{UPSTREAM_REPO}"
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/vnd.github+json"})
        if token:
            self.session.headers["Authorization"] = f"token {token}"

    def request(self, url, what, params=None):
        try:
            resp = self.session.get(url, params=params)
        except requests.RequestException as err:
            raise BackportException(f"{what}: {err}") from err
        if resp.status_code in (403, 429) and is_rate_limited(resp):
            raise RateLimitException(f"{what}: GitHub API rate limit exceeded")
        if resp.status_code >= 400:
            raise BackportException(f"{what}: GitHub API error {resp.status_code}: {error_message(resp)}")
        return resp

    def request_json(self, url, what, parse, params=None):
        """Return (parse(<decoded reply>), response); a malformed reply is fatal."""
        resp = self.request(url, what, params=params)
        try:
            return parse(resp.json()), resp
        except (ValueError, KeyError, TypeError, AttributeError) as err:
            raise BackportException(f"{what}: unexpected reply from GitHub: {err!r}") from err

    def iter_branches(self):
        # Lazily walk every page of branches; each call starts from the first page
        url = f"{self.repo_url}/branches"
        params = {"per_page": PER_PAGE}
        while url:
            names, resp = self.request_json(url, "discovering release branches",
                                            lambda data: [branch["name"] for branch in data],
                                            params=params)
            yield from names
            url = resp.links.get("next", {}).get("url")
            # the next-page URL already carries the query string
            params = None

    def get_latest_release(self, prefix=DEFAULT_CONFIG["release_prefix"]):
        last_release = None
        for name in self.iter_branches():
            if name.startswith(prefix):
                last_release = name[len(prefix):]
        if not last_release:
            raise BackportException("unable to determine latest release; try specifying --release")
        return last_release

    def get_pull_request(self, number):
        info, _resp = self.request_json(f"{self.repo_url}/pulls/{number}", f"fetching PR #{number}",
                                        parse_pull_request)
        return info

    def list_commits(self, number):
        """
        Return the SHAs of the commits in a pull request, oldest first.

        Only the first page is read; GitHub caps it at 100 commits.
        """
        commits, resp = self.request_json(f"{self.repo_url}/pulls/{number}/commits",
                                          f"fetching commits from PR #{number}",
                                          lambda data: [commit["sha"] for commit in data],
                                          params={"per_page": PER_PAGE})
        if "next" in resp.links:
            click.echo(f"warning: PR #{number} has more than {PER_PAGE} commits; "
                       f"only the first {PER_PAGE} are considered", err=True)
        return commits

    def load_pull_requests(self, numbers):
        pull_requests = PullRequests()
        for number in numbers:
            if any(pr.number == number for pr in pull_requests):
                continue
            info = self.get_pull_request(number)
            commits = self.list_commits(number)
            pull_requests.append(PullRequest(number, commits=commits, **info))
        return pull_requests


def parse_pull_request(data):
    return {
        "title": data.get("title") or "",
        "body": data.get("body") or "",
        "base_branch": (data.get("base") or {}).get("ref", ""),
    }


def is_rate_limited(resp):
    if resp.headers.get("X-RateLimit-Remaining") == "0":
        return True
    return "rate limit" in error_message(resp).lower()


def error_message(resp):
    try:
        return resp.json()["message"]
    except (ValueError, KeyError, TypeError):
        return resp.text


#----------------------------------------------------------------------------------------------

def sh(cmd, errors=False):
    if errors:
        fd = subprocess.STDOUT
    else:
        fd = subprocess.DEVNULL
    return subprocess.check_output(cmd, stderr=fd).decode("utf-8").strip()


def run(cmd, quiet=True):
    # quiet=False leaves the terminal attached, e.g. for an editor
    stdout = subprocess.DEVNULL if quiet else None
    subprocess.check_call(cmd, stdout=stdout)


def when_forced(force, forced, unforced):
    return forced if force else unforced


def get_current_branch():
    return sh(["git", "rev-parse", "--abbrev-ref", "HEAD"], errors=True)


def get_git_dir():
    return sh(["git", "rev-parse", "--git-dir"], errors=True)


def load_val_from_git_cfg(key):
    # Retrieve one option from Git config, None when unset
    try:
        return sh(["git", "config", "--get", key]) or None
    except subprocess.CalledProcessError:
        return None


def from_git_rev_read(path):
    """Retrieve given file path contents of certain Git revision."""
    if ":" not in path:
        raise ValueError("Path identifier must start with a revision hash.")

    try:
        return sh(["git", "show", "-t", path]).rstrip()
    except subprocess.CalledProcessError:
        raise ValueError(f"unable to read {path}")


def get_username(remote_url):
    """
    return 'mock_user' from 'git@github.com:mock_user/cockroach.git'

    Returns None when the URL does not point at GitHub.
    """
    m = re.search(r"github\.com[:/]([A-Za-z0-9\-]+)", remote_url)
    if m is None:
        return None
    return m.group(1)


def get_backport_branch(release, pr_numbers):
    return f"backport{release}-{'-'.join(str(n) for n in pr_numbers)}"


def is_backport_branch(branch):
    return re.match(r"^backport\d+", branch) is not None


def branch_from_backport_url(backport_url):
    m = re.search(r":(backport.*)\?", backport_url)
    if m is None:
        raise BackportException(f"malformatted url file: {backport_url}")
    return m.group(1)


def checkout_previous(force=False):
    """
    Return to the branch checked out before the backport started.

    Only done while sitting on a branch that looks like one this tool
    creates, so a branch the user switched to by hand is left alone.
    Returns True if a checkout happened.
    """
    try:
        branch = get_current_branch()
    except subprocess.CalledProcessError as err:
        raise BackportException(f"looking up current branch name: {err}") from err
    if not is_backport_branch(branch):
        return False
    try:
        run(["git", "checkout", when_forced(force, "--force", "--no-force"), "-"])
    except subprocess.CalledProcessError as err:
        raise BackportException(f"returning to previous branch: {err}") from err
    return True


#----------------------------------------------------------------------------------------------

def url_file(git_dir):
    return os.path.join(git_dir, URL_FILE_NAME)


def _marker_exists(path, what):
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as err:
        raise BackportException(f"checking for in-progress {what}: {err}") from err
    return True


def is_backporting(git_dir):
    return _marker_exists(url_file(git_dir), "backport")


def is_cherry_picking(git_dir):
    # CHERRY_PICK_HEAD is owned by git; we only ever look at it
    return _marker_exists(os.path.join(git_dir, CHERRY_PICK_HEAD), "cherry-pick")


def save_backport_url(git_dir, backport_url):
    try:
        with open(url_file(git_dir), "w") as f:
            f.write(backport_url)
    except OSError as err:
        raise BackportException(f"writing url file: {err}") from err


def load_backport_url(git_dir):
    try:
        with open(url_file(git_dir)) as f:
            backport_url = f.read().strip()
    except OSError as err:
        raise BackportException(f"reading url file: {err}") from err
    if not backport_url:
        raise BackportException("malformatted url file: file is empty")
    return backport_url


def reset_backport_url(git_dir):
    try:
        os.remove(url_file(git_dir))
    except FileNotFoundError:
        pass
    except OSError as err:
        raise BackportException(f"removing url file: {err}") from err


def get_state(git_dir):
    """Return the workflow state persisted in the git directory."""
    if not is_backporting(git_dir):
        return WORKFLOW_STATES.IDLE
    if is_cherry_picking(git_dir):
        return WORKFLOW_STATES.CONFLICTED
    return WORKFLOW_STATES.PICKING


#----------------------------------------------------------------------------------------------

def find_config():
    """Locate the optional config file at the top of the working tree."""
    try:
        git_root = sh(["git", "rev-parse", "--show-toplevel"])
    except subprocess.CalledProcessError:
        return None
    path = os.path.join(git_root, CONFIG_FILE_NAME)
    return path if os.path.exists(path) else None


def load_config(path=None):
    """
    Return a (path, config) tuple; config layers the file over DEFAULT_CONFIG.

    path may be a plain file or a '<revision>:<path>' Git reference.
    """
    if path is None:
        path = find_config()
    if path is None:
        return None, DEFAULT_CONFIG

    try:
        if os.path.exists(path):
            with open(path) as f:
                config_text = f.read()
        else:
            config_text = from_git_rev_read(path)
        d = toml.loads(config_text)
    except (OSError, ValueError) as err:
        # toml.TomlDecodeError is a ValueError
        raise BackportException(f"loading config {path}: {err}") from err
    return path, DEFAULT_CONFIG.new_child(d)


class AppConfig:
    """Settings resolved once per invocation; nothing here is persisted."""

    def __init__(self, remote, username, github, git_dir, *, force=False, config=DEFAULT_CONFIG):
        self.remote = remote
        self.username = username
        self.github = github
        self.git_dir = git_dir
        self.force = force
        self.config = config

    @classmethod
    def load(cls, *, force=False, config_path=None):
        remote = load_val_from_git_cfg(REMOTE_CFG_KEY)
        if not remote:
            raise BackportException(f"missing {REMOTE_CFG_KEY} configuration", hint=MISSING_REMOTE_HINT)

        try:
            remote_url = sh(["git", "remote", "get-url", "--push", remote], errors=True)
        except subprocess.CalledProcessError as err:
            raise BackportException(f'determining URL for remote "{remote}": {err}') from err

        username = get_username(remote_url)
        if username is None:
            raise BackportException(f'unable to guess GitHub username from remote "{remote}" ({remote_url})')
        if username == UPSTREAM_ORG:
            raise BackportException(f'refusing to use unforked remote "{remote}" ({remote_url})')

        github = GitHub(token=load_val_from_git_cfg(TOKEN_CFG_KEY))

        try:
            git_dir = get_git_dir()
        except subprocess.CalledProcessError as err:
            raise BackportException(f"looking up git directory: {err}") from err

        _path, config = load_config(config_path)
        return cls(remote, username, github, git_dir, force=force, config=config)


#----------------------------------------------------------------------------------------------

class Backporter:

    # The states a new backport may start from
    START_STATES = (WORKFLOW_STATES.IDLE,)
    # The states continue and abort may resume from
    PAUSED_STATES = (WORKFLOW_STATES.PICKING, WORKFLOW_STATES.CONFLICTED)

    def __init__(self, app_config):
        self.app_config = app_config
        self.state = get_state(app_config.git_dir)

    @property
    def force(self):
        return self.app_config.force

    @property
    def git_dir(self):
        return self.app_config.git_dir

    @property
    def config(self):
        return self.app_config.config

    def get_pr_url(self, release_branch, backport_branch, pull_requests):
        query = urllib.parse.urlencode([
            ("body", pull_requests.message(cc=self.config["cc"])),
            ("expand", "1"),
            ("title", pull_requests.title(release_branch)),
        ])
        return COMPARE_URL_TEMPLATE.format(
            org=UPSTREAM_ORG, repo=UPSTREAM_REPO, base=release_branch,
            username=self.app_config.username, head=backport_branch, query=query)

    def fetch_branch(self, branch):
        # git fetch <upstream url> refs/heads/<branch>
        try:
            run(["git", "fetch", UPSTREAM_FETCH_URL, f"refs/heads/{branch}"])
        except subprocess.CalledProcessError as err:
            raise BackportException(f'fetching "{branch}" branch: {err}') from err

    def checkout_backport_branch(self, backport_branch):
        # git checkout -b <backport_branch> FETCH_HEAD
        cmd = ["git", "checkout",
               when_forced(self.force, "--force", "--no-force"),
               when_forced(self.force, "-B", "-b"),
               backport_branch, "FETCH_HEAD"]
        try:
            run(cmd)
        except subprocess.CalledProcessError as err:
            raise BackportException(f'creating backport branch "{backport_branch}": {err}') from err

    def cherry_pick(self, commits):
        # git cherry-pick <commit>...
        if not commits:
            click.echo("warning: no commits selected; nothing to cherry-pick", err=True)
            return
        try:
            run(["git", "cherry-pick", *commits])
        except subprocess.CalledProcessError as err:
            self.state = WORKFLOW_STATES.CONFLICTED
            raise CherryPickException(str(err)) from err

    def backport(self, pr_numbers, commit_refs=(), release=None):
        if self.state not in self.START_STATES:
            raise BackportException("backport already in progress")

        self.state = WORKFLOW_STATES.SELECTING
        default_branch = self.config["default_branch"]
        pull_requests = self.app_config.github.load_pull_requests(pr_numbers)

        if not self.force:
            for pr in pull_requests:
                if pr.base_branch != default_branch:
                    raise BackportException(f"PR #{pr.number} targets {pr.base_branch}, not {default_branch}; "
                                            "are you backporting a backport?")

        pull_requests.select_commits(commit_refs)

        release_prefix = self.config["release_prefix"]
        if not release:
            release = self.app_config.github.get_latest_release(release_prefix)
        release_branch = f"{release_prefix}{release}"

        # The release branch goes last so that FETCH_HEAD points at it below
        for branch in (default_branch, release_branch):
            self.fetch_branch(branch)

        backport_branch = get_backport_branch(release, pr_numbers)
        self.checkout_backport_branch(backport_branch)

        backport_url = self.get_pr_url(release_branch, backport_branch, pull_requests)
        save_backport_url(self.git_dir, backport_url)
        self.state = WORKFLOW_STATES.PICKING

        self.cherry_pick(pull_requests.selected_commits())
        self.finalize(backport_branch, backport_url)

    def continue_backport(self):
        if self.state not in self.PAUSED_STATES:
            raise BackportException("no backport in progress")

        if is_cherry_picking(self.git_dir):
            try:
                run(["git", "cherry-pick", "--continue"], quiet=False)
            except subprocess.CalledProcessError as err:
                raise CherryPickException(str(err)) from err
            self.state = WORKFLOW_STATES.PICKING

        backport_url = load_backport_url(self.git_dir)
        backport_branch = branch_from_backport_url(backport_url)
        self.finalize(backport_branch, backport_url)

    def abort_backport(self):
        if self.state not in self.PAUSED_STATES:
            raise BackportException("no backport in progress")

        reset_backport_url(self.git_dir)

        if is_cherry_picking(self.git_dir):
            try:
                run(["git", "cherry-pick", "--abort"])
            except subprocess.CalledProcessError as err:
                raise BackportException(f"aborting cherry-pick: {err}") from err

        self.state = WORKFLOW_STATES.IDLE
        checkout_previous(self.force)

    def finalize(self, backport_branch, backport_url):
        # git push -u <remote> <backport_branch>:<backport_branch>
        self.state = WORKFLOW_STATES.FINALIZING
        cmd = ["git", "push", "-u",
               when_forced(self.force, "--force", "--no-force"),
               self.app_config.remote, f"{backport_branch}:{backport_branch}"]
        try:
            run(cmd)
        except subprocess.CalledProcessError as err:
            raise BackportException(f"pushing branch: {err}") from err

        reset_backport_url(self.git_dir)
        self.open_pr(backport_url)

        self.state = WORKFLOW_STATES.IDLE
        checkout_previous(self.force)

    def open_pr(self, backport_url):
        try:
            status = click.launch(backport_url, wait=True)
        except OSError as err:
            reason = str(err)
        else:
            if not status:
                return
            reason = f"exit status {status}"
        click.echo(f"warning: unable to launch web browser: {reason}", err=True)
        click.echo(f"Submit PR manually at:\n    {backport_url}", err=True)

    def status(self):
        state = get_state(self.git_dir)
        click.echo(f"state: {state.name}")
        if state != WORKFLOW_STATES.IDLE:
            click.echo(f"pending PR: {load_backport_url(self.git_dir)}")
        return state


#----------------------------------------------------------------------------------------------

def parse_pr_numbers(pr_args):
    pr_numbers = []
    for pr_arg in pr_args:
        try:
            pr_numbers.append(int(pr_arg))
        except ValueError:
            raise BackportException(f'"{pr_arg}" is not a valid pull request number')
    return pr_numbers


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


@click.command(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__)
@click.option("--continue", "cont", is_flag=True, help="Resume an in-progress backport")
@click.option("--abort", "abort", is_flag=True, help="Cancel an in-progress backport")
@click.option("--status", "status", is_flag=True, help="Show whether a backport is in progress")
@click.option('-c', "--commit", "commits", metavar="COMMIT", multiple=True,
              help="Only cherry-pick the mentioned commits; prefix with '!' to skip one [repeatable]")
@click.option('-r', "--release", "release", metavar="RELEASE", default=None, help="Select release to backport to")
@click.option('-f', "--force", is_flag=True, help="Live on the edge")
@click.option("--config", "config_path", metavar="CONFIG-PATH",
              help=(f"Path to config file, {CONFIG_FILE_NAME} "
                    "from project root by default. You can prepend "
                    "a colon-separated Git 'commitish' reference."), default=None)
@click.argument("pr_args", metavar="PULL_REQUEST...", nargs=-1)
@click.pass_context
def backport_cli(ctx, cont, abort, status, commits, release, force, config_path, pr_args):
    """Backport GitHub pull requests to a CockroachDB release branch.

    By default, backport will cherry-pick all commits in the specified PRs.
    If you explicitly list commits on the command line, backport will
    cherry-pick only the mentioned commits.

    If manual conflict resolution is required, backport will quit so you
    can use standard Git commands to resolve the conflict. After you have
    resolved the conflict, resume backporting with 'backport --continue'.
    To give up instead, run 'backport --abort'.

    To determine what Git remote to push to, backport looks at the value of
    the cockroach.remote Git config option. You can set this option by
    running 'git config cockroach.remote REMOTE-NAME'.

    \b
    Example invocations:
        $ backport 23437
        $ backport 23389 23437 -r 1.1 -c 00c6a87 -c a26506b -c '!a32f4ce'
        $ backport --continue
        $ backport --abort
    """
    modes = sum((cont, abort, status))
    if modes > 1 or (modes and (pr_args or commits or release)):
        raise BackportException(USAGE)

    if not modes and not pr_args:
        click.echo(ctx.get_help(), err=True)
        return

    pr_numbers = parse_pr_numbers(pr_args)

    try:
        app_config = AppConfig.load(force=force, config_path=config_path)
        backporter = Backporter(app_config)
        if cont:
            backporter.continue_backport()
        elif abort:
            backporter.abort_backport()
        elif status:
            backporter.status()
        else:
            backporter.backport(pr_numbers, commits, release)
    except subprocess.CalledProcessError as err:
        raise BackportException(str(err)) from err


#----------------------------------------------------------------------------------------------

if __name__ == "__main__":
    backport_cli()
