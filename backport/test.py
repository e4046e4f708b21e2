import os
import re
import subprocess
import urllib.parse
import warnings
from unittest import mock

import pytest
import requests
from click.testing import CliRunner

from .backport import (
    DEFAULT_CONFIG,
    TOKEN_CFG_KEY,
    REMOTE_CFG_KEY,
    UPSTREAM_FETCH_URL,
    WORKFLOW_STATES,
    AppConfig,
    Backporter,
    BackportException,
    CherryPickException,
    GitHub,
    PullRequest,
    PullRequests,
    RateLimitException,
    backport_cli,
    branch_from_backport_url,
    checkout_previous,
    find_config,
    get_backport_branch,
    get_current_branch,
    get_git_dir,
    get_state,
    get_username,
    is_backport_branch,
    is_backporting,
    is_cherry_picking,
    load_backport_url,
    load_config,
    load_val_from_git_cfg,
    reset_backport_url,
    run,
    save_backport_url,
    select_commits,
    sh,
)


PRS = {
    100: {"title": "sql: fix the thing", "body": "Fixes #99.", "commits": ["a1", "a2", "a3"]},
    200: {"title": "kv: speed up scans", "body": "Faster.", "commits": ["b1"]},
    300: {"title": "backport of a backport", "body": "", "commits": ["c1"], "base": "release-1.1"},
}

BACKPORT_URL = (
    "https://github.com/cockroachdb/cockroach/compare/"
    "release-1.1...mock-user:backport1.1-100?body=Backport&expand=1&title=release-1.1%3A+TODO"
)


def make_response(json_data=None, status_code=200, links=None, headers=None, text=""):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.links = links or {}
    resp.headers = headers or {}
    resp.text = text
    return resp


def fake_github(prs=PRS, branches=("master", "release-1.0", "release-1.1", "staging")):
    github = GitHub()

    def get(url, params=None):
        path = url[len(github.repo_url):]
        if path == "/branches":
            return make_response([{"name": name} for name in branches])
        m = re.match(r"^/pulls/(\d+)(/commits)?$", path)
        pr = prs[int(m.group(1))]
        if m.group(2):
            return make_response([{"sha": sha} for sha in pr["commits"]])
        return make_response({
            "number": int(m.group(1)),
            "title": pr["title"],
            "body": pr["body"],
            "base": {"ref": pr.get("base", "master")},
        })

    github.session.get = get
    return github


def make_prs(*commit_lists):
    return PullRequests(
        PullRequest(100 * (i + 1), title=f"PR {i + 1}", commits=commits)
        for i, commits in enumerate(commit_lists)
    )


def commands(run_mock):
    return [c.args[0] for c in run_mock.call_args_list]


@pytest.fixture
def cd():
    cwd = os.getcwd()

    def changedir(d):
        os.chdir(d)

    yield changedir

    # restore CWD back
    os.chdir(cwd)


@pytest.fixture
def git_init():
    git_init_cmd = "git", "init", "."
    return lambda: subprocess.run(git_init_cmd, check=True)


@pytest.fixture
def git_add():
    git_add_cmd = "git", "add"
    return lambda *extra_args: (subprocess.run(git_add_cmd + extra_args, check=True))


@pytest.fixture
def git_checkout():
    git_checkout_cmd = "git", "checkout"
    return lambda *extra_args: (
        subprocess.run(git_checkout_cmd + extra_args, check=True)
    )


@pytest.fixture
def git_commit():
    git_commit_cmd = "git", "commit", "-m"
    return lambda msg, *extra_args: (
        subprocess.run(git_commit_cmd + (msg,) + extra_args, check=True)
    )


@pytest.fixture
def git_config():
    git_config_cmd = "git", "config"
    return lambda *extra_args: (subprocess.run(git_config_cmd + extra_args, check=True))


@pytest.fixture
def tmp_git_repo_dir(tmpdir, cd, git_init, git_commit, git_config):
    cd(tmpdir)
    git_init()
    git_config("--local", "user.name", "Monty Python")
    git_config("--local", "user.email", "bot@cockroachlabs.com")
    git_config("--local", "commit.gpgsign", "false")
    git_commit("Initial commit", "--allow-empty")
    yield tmpdir


@pytest.fixture
def app_config(tmp_path):
    return AppConfig("origin", "mock-user", fake_github(), str(tmp_path))


@pytest.fixture
def mock_git():
    with mock.patch("backport.backport.run") as run_mock, \
            mock.patch("backport.backport.get_current_branch", return_value="backport1.1-100"), \
            mock.patch("click.launch", return_value=0):
        yield run_mock


#----------------------------------------------------------------------------------------------
# commit selection

def test_select_commits_no_refs_selects_everything():
    prs = make_prs(["a1", "a2", "a3"])
    select_commits(prs, [])
    assert prs[0].selected_commits == ["a1", "a2", "a3"]


def test_select_commits_include():
    prs = make_prs(["a1", "a2", "a3"])
    select_commits(prs, ["a2"])
    assert prs[0].selected_commits == ["a2"]


def test_select_commits_include_then_exclude_same_commit():
    prs = make_prs(["a1", "a2", "a3"])
    select_commits(prs, ["a2", "!a2"])
    assert prs[0].selected_commits == []
    assert prs.selected_commits() == []


def test_select_commits_excludes_apply_after_includes():
    prs = make_prs(["a1", "a2", "a3"])
    select_commits(prs, ["!a2", "a2", "a3"])
    assert prs[0].selected_commits == ["a3"]


def test_select_commits_exclude_only():
    prs = make_prs(["a1", "a2", "a3"])
    select_commits(prs, ["!a2"])
    assert prs[0].selected_commits == ["a1", "a3"]


def test_select_commits_multiple_prs_keep_order():
    prs = make_prs(["a1", "a2"], ["b1"])
    select_commits(prs, [])
    assert prs.selected_commits() == ["a1", "a2", "b1"]


@pytest.mark.parametrize("refs", [["a3", "a1", "b1"], ["b1", "a1", "a3"], ["a1", "b1", "a3"]])
def test_select_commits_include_order_does_not_matter(refs):
    prs = make_prs(["a1", "a2", "a3"], ["b1", "b2"])
    select_commits(prs, refs)
    assert prs[0].selected_commits == ["a1", "a3"]
    assert prs[1].selected_commits == ["b1"]


def test_select_commits_same_include_twice():
    prs = make_prs(["a1", "a2"])
    select_commits(prs, ["a2", "a2"])
    assert prs[0].selected_commits == ["a2"]


def test_select_commits_matches_by_prefix():
    prs = make_prs(["00c6a87f3e", "a26506b1c2"])
    select_commits(prs, ["00c6a"])
    assert prs[0].selected_commits == ["00c6a87f3e"]


@pytest.mark.parametrize(
    "refs,message",
    [
        (["zz"], 'commit "zz" was not found in any of the specified PRs'),
        (["!zz"], 'commit "zz" was not found in any of the specified PRs'),
        (["a1", "!a2"], 'commit "a2" was not found in any of the specified PRs'),
        (["a"], 'commit ref "a" is ambiguous'),
        (["!a"], 'commit ref "a" is ambiguous'),
        (["ab"], 'commit ref "ab" is ambiguous'),
    ],
)
def test_select_commits_errors_leave_selection_untouched(refs, message):
    prs = make_prs(["a1", "a2", "ab1"], ["ab2"])
    with pytest.raises(BackportException) as exc_info:
        select_commits(prs, refs)
    assert str(exc_info.value) == message
    assert prs[0].selected_commits == ["a1", "a2", "ab1"]
    assert prs[1].selected_commits == ["ab2"]


#----------------------------------------------------------------------------------------------
# title and description

def test_title_single_pr():
    prs = make_prs(["a1", "a2"], ["b1"])
    select_commits(prs, ["a1"])
    assert prs.title("release-1.1") == "release-1.1: PR 1"


def test_title_multiple_prs():
    prs = make_prs(["a1", "a2"], ["b1"])
    assert prs.title("release-1.1") == "release-1.1: TODO"


def test_message_single_pr():
    prs = PullRequests([PullRequest(100, "sql: fix", "Fixes #99.", "master", ["a1", "a2", "a3"])])
    select_commits(prs, ["a2"])
    assert prs.message() == (
        "Backport 1/3 commits from #100.\n"
        "\n"
        "/cc @cockroachdb/release\n"
        "\n"
        "---\n"
        "\n"
        "Fixes #99.\n"
    )


def test_message_multiple_prs():
    prs = PullRequests([
        PullRequest(100, "sql: fix", "Fixes #99.", "master", ["a1", "a2"]),
        PullRequest(200, "kv: speed up", "Faster.", "master", ["b1"]),
    ])
    select_commits(prs, ["!a1"])
    message = prs.message()
    assert message == (
        "Backport:\n"
        '  * 1/2 commits from "sql: fix" (#100)\n'
        '  * 1/1 commits from "kv: speed up" (#200)\n'
        "\n"
        "Please see individual PRs for details.\n"
        "\n"
        "/cc @cockroachdb/release\n"
    )
    assert "Fixes #99." not in message


def test_message_quotes_titles():
    prs = PullRequests([
        PullRequest(100, 'sql: support "AS OF"', "", "master", ["a1"]),
        PullRequest(200, "kv: speed up", "", "master", ["b1"]),
    ])
    assert '  * 1/1 commits from "sql: support \\"AS OF\\"" (#100)\n' in prs.message()


def test_message_skips_prs_without_selected_commits():
    prs = make_prs(["a1"], ["b1"])
    select_commits(prs, ["b1"])
    assert prs.title("release-2.0") == "release-2.0: PR 2"
    assert prs.message().startswith("Backport 1/1 commits from #200.\n")


#----------------------------------------------------------------------------------------------
# git helpers

@mock.patch("subprocess.check_output")
def test_get_current_branch(subprocess_check_output):
    subprocess_check_output.return_value = b"master\n"
    assert get_current_branch() == "master"


@mock.patch("subprocess.check_output")
def test_sh_strips_output(subprocess_check_output):
    subprocess_check_output.return_value = b"  .git\n"
    assert sh(["git", "rev-parse", "--git-dir"]) == ".git"
    subprocess_check_output.assert_called_once_with(
        ["git", "rev-parse", "--git-dir"], stderr=subprocess.DEVNULL
    )


@mock.patch("subprocess.check_call")
def test_run_is_quiet_by_default(subprocess_check_call):
    run(["git", "fetch", "origin"])
    subprocess_check_call.assert_called_once_with(["git", "fetch", "origin"], stdout=subprocess.DEVNULL)


@mock.patch("subprocess.check_call")
def test_run_not_quiet(subprocess_check_call):
    run(["git", "cherry-pick", "--continue"], quiet=False)
    subprocess_check_call.assert_called_once_with(["git", "cherry-pick", "--continue"], stdout=None)


@mock.patch("subprocess.check_call")
def test_run_propagates_failure(subprocess_check_call):
    subprocess_check_call.side_effect = subprocess.CalledProcessError(1, ["git", "push"])
    with pytest.raises(subprocess.CalledProcessError):
        run(["git", "push"])


@mock.patch("subprocess.check_output")
def test_load_val_from_git_cfg_unset(subprocess_check_output):
    subprocess_check_output.side_effect = subprocess.CalledProcessError(1, ["git", "config"])
    assert load_val_from_git_cfg(REMOTE_CFG_KEY) is None


@pytest.mark.parametrize(
    "url",
    [
        "git@github.com:mock-user/cockroach.git",
        "git@github.com:mock-user/cockroach",
        "ssh://git@github.com/mock-user/cockroach.git",
        "https://github.com/mock-user/cockroach.git",
        "https://github.com/mock-user/cockroach",
    ],
)
def test_get_username(url):
    assert get_username(url) == "mock-user"


def test_get_username_stops_at_underscore():
    # GitHub logins cannot contain underscores
    assert get_username("git@github.com:mock_user/cockroach.git") == "mock"


def test_get_username_not_github():
    assert get_username("https://gitlab.com/mock-user/cockroach.git") is None


def test_get_backport_branch():
    assert get_backport_branch("1.1", [100]) == "backport1.1-100"
    assert get_backport_branch("19.2", [100, 200]) == "backport19.2-100-200"


@pytest.mark.parametrize(
    "branch,expected",
    [
        ("backport1.1-100", True),
        ("backport19.2-100-200", True),
        ("backport-22a594a-3.6", False),
        ("backports", False),
        ("my-backport1.1-100", False),
        ("master", False),
    ],
)
def test_is_backport_branch(branch, expected):
    assert is_backport_branch(branch) is expected


def test_branch_from_backport_url():
    assert branch_from_backport_url(BACKPORT_URL) == "backport1.1-100"


def test_branch_from_backport_url_malformatted():
    with pytest.raises(BackportException, match="malformatted url file"):
        branch_from_backport_url("https://github.com/cockroachdb/cockroach/pulls")


@mock.patch("backport.backport.run")
@mock.patch("backport.backport.get_current_branch", return_value="backport1.1-100")
def test_checkout_previous(get_current_branch_mock, run_mock):
    assert checkout_previous() is True
    run_mock.assert_called_once_with(["git", "checkout", "--no-force", "-"])


@mock.patch("backport.backport.run")
@mock.patch("backport.backport.get_current_branch", return_value="backport1.1-100")
def test_checkout_previous_forced(get_current_branch_mock, run_mock):
    assert checkout_previous(force=True) is True
    run_mock.assert_called_once_with(["git", "checkout", "--force", "-"])


@pytest.mark.parametrize("branch", ["master", "my-backport1.1-100", "backport-fix"])
@mock.patch("backport.backport.run")
def test_checkout_previous_leaves_other_branches_alone(run_mock, branch):
    with mock.patch("backport.backport.get_current_branch", return_value=branch):
        assert checkout_previous() is False
    run_mock.assert_not_called()


@mock.patch("backport.backport.run")
@mock.patch("backport.backport.get_current_branch", return_value="backport1.1-100")
def test_checkout_previous_failure(get_current_branch_mock, run_mock):
    run_mock.side_effect = subprocess.CalledProcessError(1, ["git", "checkout"])
    with pytest.raises(BackportException, match="returning to previous branch"):
        checkout_previous()


def test_checkout_previous_in_repo(tmp_git_repo_dir, git_checkout):
    initial_branch = get_current_branch()
    git_checkout("-b", "backport1.1-100")
    assert get_current_branch() == "backport1.1-100"

    assert checkout_previous() is True
    assert get_current_branch() == initial_branch


def test_get_git_dir_in_repo(tmp_git_repo_dir):
    git_dir = get_git_dir()
    assert os.path.isdir(git_dir)
    assert not is_backporting(git_dir)
    assert not is_cherry_picking(git_dir)


#----------------------------------------------------------------------------------------------
# workflow marker

def test_marker_lifecycle(tmp_path):
    git_dir = str(tmp_path)
    assert not is_backporting(git_dir)
    assert get_state(git_dir) == WORKFLOW_STATES.IDLE

    save_backport_url(git_dir, BACKPORT_URL)
    assert is_backporting(git_dir)
    assert load_backport_url(git_dir) == BACKPORT_URL
    assert get_state(git_dir) == WORKFLOW_STATES.PICKING

    (tmp_path / "CHERRY_PICK_HEAD").write_text("a2\n")
    assert is_cherry_picking(git_dir)
    assert get_state(git_dir) == WORKFLOW_STATES.CONFLICTED

    reset_backport_url(git_dir)
    assert not is_backporting(git_dir)
    assert get_state(git_dir) == WORKFLOW_STATES.IDLE


def test_reset_backport_url_is_idempotent(tmp_path):
    reset_backport_url(str(tmp_path))
    reset_backport_url(str(tmp_path))
    assert not is_backporting(str(tmp_path))


def test_load_backport_url_missing(tmp_path):
    with pytest.raises(BackportException, match="reading url file"):
        load_backport_url(str(tmp_path))


def test_load_backport_url_empty(tmp_path):
    (tmp_path / "BACKPORT_URL").write_text("")
    with pytest.raises(BackportException, match="malformatted url file"):
        load_backport_url(str(tmp_path))


def test_save_backport_url_failure(tmp_path):
    with pytest.raises(BackportException, match="writing url file"):
        save_backport_url(str(tmp_path / "missing-dir"), BACKPORT_URL)


#----------------------------------------------------------------------------------------------
# GitHub

def test_github_token_header():
    assert GitHub(token="secret").session.headers["Authorization"] == "token secret"
    assert "Authorization" not in GitHub().session.headers


def test_get_latest_release_follows_pages():
    github = GitHub()
    next_url = f"{github.repo_url}/branches?per_page=100&page=2"
    pages = [
        make_response(
            [{"name": "master"}, {"name": "release-19.1"}, {"name": "release-19.2"}],
            links={"next": {"url": next_url}},
        ),
        make_response([{"name": "release-20.1"}, {"name": "staging"}]),
    ]
    with mock.patch.object(github.session, "get", side_effect=pages) as get:
        assert github.get_latest_release() == "20.1"

    assert get.call_count == 2
    assert get.call_args_list[0] == mock.call(f"{github.repo_url}/branches", params={"per_page": 100})
    assert get.call_args_list[1] == mock.call(next_url, params=None)


def test_iter_branches_restarts():
    github = fake_github(branches=("master", "release-1.1"))
    assert list(github.iter_branches()) == ["master", "release-1.1"]
    assert list(github.iter_branches()) == ["master", "release-1.1"]


def test_get_latest_release_none_found():
    github = fake_github(branches=("master", "staging"))
    with pytest.raises(BackportException, match="unable to determine latest release"):
        github.get_latest_release()


def test_rate_limited():
    github = GitHub()
    resp = make_response(
        {"message": "API rate limit exceeded for 127.0.0.1."},
        status_code=403,
        headers={"X-RateLimit-Remaining": "0"},
    )
    with mock.patch.object(github.session, "get", return_value=resp):
        with pytest.raises(RateLimitException) as exc_info:
            github.get_pull_request(100)
    assert "fetching PR #100" in str(exc_info.value)
    assert TOKEN_CFG_KEY in exc_info.value.hint


def test_forbidden_without_rate_limit():
    github = GitHub()
    resp = make_response({"message": "Resource not accessible"}, status_code=403,
                         headers={"X-RateLimit-Remaining": "42"})
    with mock.patch.object(github.session, "get", return_value=resp):
        with pytest.raises(BackportException) as exc_info:
            github.get_pull_request(100)
    assert not isinstance(exc_info.value, RateLimitException)


def test_not_found():
    github = GitHub()
    resp = make_response({"message": "Not Found"}, status_code=404)
    with mock.patch.object(github.session, "get", return_value=resp):
        with pytest.raises(BackportException) as exc_info:
            github.list_commits(100)
    assert str(exc_info.value) == "fetching commits from PR #100: GitHub API error 404: Not Found"


@pytest.mark.parametrize(
    "call,reply,what",
    [
        (lambda github: github.get_pull_request(100), ValueError("Expecting value: line 1 column 1 (char 0)"),
         "fetching PR #100"),
        (lambda github: github.get_pull_request(100), ["not", "a", "dict"], "fetching PR #100"),
        (lambda github: github.list_commits(100), [{"commit": {}}], "fetching commits from PR #100"),
        (lambda github: github.get_latest_release(), {"message": "not a list"}, "discovering release branches"),
    ],
)
def test_malformed_reply(call, reply, what):
    github = GitHub()
    resp = make_response()
    if isinstance(reply, Exception):
        resp.json.side_effect = reply
    else:
        resp.json.return_value = reply
    with mock.patch.object(github.session, "get", return_value=resp):
        with pytest.raises(BackportException) as exc_info:
            call(github)
    assert str(exc_info.value).startswith(f"{what}: unexpected reply from GitHub")


def test_network_error():
    github = GitHub()
    with mock.patch.object(github.session, "get", side_effect=requests.ConnectionError("boom")):
        with pytest.raises(BackportException, match="fetching PR #100: boom"):
            github.get_pull_request(100)


def test_list_commits_warns_about_truncation(capsys):
    github = GitHub()
    resp = make_response([{"sha": "a1"}], links={"next": {"url": "https://example.com/page2"}})
    with mock.patch.object(github.session, "get", return_value=resp) as get:
        assert github.list_commits(100) == ["a1"]
    get.assert_called_once()
    assert "PR #100 has more than 100 commits" in capsys.readouterr().err


def test_load_pull_requests():
    prs = fake_github().load_pull_requests([200, 100, 200])
    assert [pr.number for pr in prs] == [200, 100]
    assert prs[1].title == "sql: fix the thing"
    assert prs[1].body == "Fixes #99."
    assert prs[1].base_branch == "master"
    assert prs[1].commits == ["a1", "a2", "a3"]
    assert prs[1].selected_commits == ["a1", "a2", "a3"]


#----------------------------------------------------------------------------------------------
# configuration

def test_load_config_defaults(tmp_path, cd):
    cd(tmp_path)
    with mock.patch("backport.backport.find_config", return_value=None):
        path, config = load_config()
    assert path is None
    assert config["default_branch"] == "master"


def test_load_config_file(tmp_path):
    config_file = tmp_path / ".backport.toml"
    config_file.write_text('default_branch = "main"\n')
    path, config = load_config(str(config_file))
    assert path == str(config_file)
    assert config["default_branch"] == "main"
    assert config["release_prefix"] == "release-"
    assert DEFAULT_CONFIG["default_branch"] == "master"


def test_load_config_invalid(tmp_path):
    config_file = tmp_path / ".backport.toml"
    config_file.write_text("default_branch = \n")
    with pytest.raises(BackportException, match="loading config"):
        load_config(str(config_file))


def test_find_and_load_config_from_revision(tmp_git_repo_dir, git_add, git_commit):
    tmp_git_repo_dir.join(".backport.toml").write('cc = "@cockroachdb/sql"\n')
    git_add(".backport.toml")
    git_commit("Add config")

    found = find_config()
    assert os.path.samefile(found, str(tmp_git_repo_dir.join(".backport.toml")))

    path, config = load_config("HEAD:.backport.toml")
    assert path == "HEAD:.backport.toml"
    assert config["cc"] == "@cockroachdb/sql"


def fake_sh(remote_url):
    def sh_(cmd, errors=False):
        if cmd[:3] == ["git", "remote", "get-url"]:
            return remote_url
        if cmd == ["git", "rev-parse", "--git-dir"]:
            return ".git"
        raise subprocess.CalledProcessError(128, cmd)
    return sh_


def fake_git_cfg(values):
    return lambda key: values.get(key)


def test_app_config_load():
    values = {REMOTE_CFG_KEY: "origin", TOKEN_CFG_KEY: "secret"}
    with mock.patch("backport.backport.load_val_from_git_cfg", side_effect=fake_git_cfg(values)), \
            mock.patch("backport.backport.sh", side_effect=fake_sh("git@github.com:mock-user/cockroach.git")):
        app_config = AppConfig.load(force=True)
    assert app_config.remote == "origin"
    assert app_config.username == "mock-user"
    assert app_config.git_dir == ".git"
    assert app_config.force is True
    assert app_config.github.session.headers["Authorization"] == "token secret"
    assert app_config.config["cc"] == "@cockroachdb/release"


def test_app_config_missing_remote():
    with mock.patch("backport.backport.load_val_from_git_cfg", return_value=None):
        with pytest.raises(BackportException) as exc_info:
            AppConfig.load()
    assert str(exc_info.value) == "missing cockroach.remote configuration"
    assert "git config cockroach.remote origin" in exc_info.value.hint


@pytest.mark.parametrize(
    "remote_url,message",
    [
        ("git@github.com:cockroachdb/cockroach.git", 'refusing to use unforked remote "origin"'),
        ("https://gitlab.com/mock-user/cockroach.git", 'unable to guess GitHub username from remote "origin"'),
    ],
)
def test_app_config_bad_remote(remote_url, message):
    with mock.patch("backport.backport.load_val_from_git_cfg", side_effect=fake_git_cfg({REMOTE_CFG_KEY: "origin"})), \
            mock.patch("backport.backport.sh", side_effect=fake_sh(remote_url)):
        with pytest.raises(BackportException) as exc_info:
            AppConfig.load()
    assert str(exc_info.value).startswith(message)


#----------------------------------------------------------------------------------------------
# workflow

def test_backport_single_pr(app_config, mock_git):
    with mock.patch("click.launch", return_value=0) as launch:
        backporter = Backporter(app_config)
        backporter.backport([100], ["a2"], "1.1")

    assert commands(mock_git) == [
        ["git", "fetch", UPSTREAM_FETCH_URL, "refs/heads/master"],
        ["git", "fetch", UPSTREAM_FETCH_URL, "refs/heads/release-1.1"],
        ["git", "checkout", "--no-force", "-b", "backport1.1-100", "FETCH_HEAD"],
        ["git", "cherry-pick", "a2"],
        ["git", "push", "-u", "--no-force", "origin", "backport1.1-100:backport1.1-100"],
        ["git", "checkout", "--no-force", "-"],
    ]
    assert not is_backporting(app_config.git_dir)
    assert backporter.state == WORKFLOW_STATES.IDLE

    url = launch.call_args.args[0]
    launch.assert_called_once_with(url, wait=True)
    base, _, query = url.partition("?")
    assert base == "https://github.com/cockroachdb/cockroach/compare/release-1.1...mock-user:backport1.1-100"
    params = urllib.parse.parse_qs(query)
    assert params["title"] == ["release-1.1: sql: fix the thing"]
    assert params["expand"] == ["1"]
    assert params["body"][0].startswith("Backport 1/3 commits from #100.\n")
    assert branch_from_backport_url(url) == "backport1.1-100"


def test_backport_all_commits_by_default(app_config, mock_git):
    Backporter(app_config).backport([100], [], "1.1")
    assert ["git", "cherry-pick", "a1", "a2", "a3"] in commands(mock_git)


def test_backport_multiple_prs(app_config, mock_git):
    with mock.patch("click.launch", return_value=0) as launch:
        Backporter(app_config).backport([100, 200], [], "1.1")

    cmds = commands(mock_git)
    assert ["git", "cherry-pick", "a1", "a2", "a3", "b1"] in cmds
    assert ["git", "checkout", "--no-force", "-b", "backport1.1-100-200", "FETCH_HEAD"] in cmds
    params = urllib.parse.parse_qs(launch.call_args.args[0].partition("?")[2])
    assert params["title"] == ["release-1.1: TODO"]


def test_backport_nothing_selected(app_config, mock_git, capsys):
    Backporter(app_config).backport([100], ["a2", "!a2"], "1.1")
    cmds = commands(mock_git)
    assert not any(cmd[1] == "cherry-pick" for cmd in cmds)
    assert ["git", "push", "-u", "--no-force", "origin", "backport1.1-100:backport1.1-100"] in cmds
    assert "nothing to cherry-pick" in capsys.readouterr().err


def test_backport_latest_release(app_config, mock_git):
    Backporter(app_config).backport([100])
    assert ["git", "fetch", UPSTREAM_FETCH_URL, "refs/heads/release-1.1"] in commands(mock_git)


def test_backport_writes_marker_before_cherry_pick(app_config, mock_git):
    seen = []

    def record(cmd, quiet=True):
        if cmd[1] == "cherry-pick":
            seen.append(is_backporting(app_config.git_dir))
        if cmd[1] == "checkout" and "FETCH_HEAD" in cmd:
            seen.append(is_backporting(app_config.git_dir))

    mock_git.side_effect = record
    Backporter(app_config).backport([100], [], "1.1")
    assert seen == [False, True]


def test_backport_conflict_keeps_marker(app_config, mock_git):
    def fail_cherry_pick(cmd, quiet=True):
        if cmd[1] == "cherry-pick":
            raise subprocess.CalledProcessError(1, cmd)

    mock_git.side_effect = fail_cherry_pick
    backporter = Backporter(app_config)
    with pytest.raises(CherryPickException) as exc_info:
        backporter.backport([100], [], "1.1")

    assert "backport --continue" in exc_info.value.hint
    assert is_backporting(app_config.git_dir)
    assert backporter.state == WORKFLOW_STATES.CONFLICTED
    assert not any(cmd[1] == "push" for cmd in commands(mock_git))
    assert branch_from_backport_url(load_backport_url(app_config.git_dir)) == "backport1.1-100"


def test_backport_already_in_progress(app_config, mock_git):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    with pytest.raises(BackportException, match="backport already in progress"):
        Backporter(app_config).backport([100], [], "1.1")
    mock_git.assert_not_called()


def test_backport_of_a_backport(app_config, mock_git):
    with pytest.raises(BackportException) as exc_info:
        Backporter(app_config).backport([300], [], "1.1")
    assert str(exc_info.value) == (
        "PR #300 targets release-1.1, not master; are you backporting a backport?"
    )
    mock_git.assert_not_called()
    assert not is_backporting(app_config.git_dir)


def test_backport_forced(app_config, mock_git):
    app_config.force = True
    Backporter(app_config).backport([300], [], "1.1")
    cmds = commands(mock_git)
    assert ["git", "checkout", "--force", "-B", "backport1.1-300", "FETCH_HEAD"] in cmds
    assert ["git", "push", "-u", "--force", "origin", "backport1.1-300:backport1.1-300"] in cmds
    assert cmds[-1] == ["git", "checkout", "--force", "-"]


def test_backport_bad_commit_ref_leaves_no_state(app_config, mock_git):
    with pytest.raises(BackportException, match="was not found"):
        Backporter(app_config).backport([100], ["zz"], "1.1")
    mock_git.assert_not_called()
    assert not is_backporting(app_config.git_dir)


def test_backport_fetch_failure(app_config, mock_git):
    mock_git.side_effect = subprocess.CalledProcessError(128, ["git", "fetch"])
    with pytest.raises(BackportException, match='fetching "master" branch'):
        Backporter(app_config).backport([100], [], "1.1")
    assert not is_backporting(app_config.git_dir)


def test_backport_push_failure_keeps_marker(app_config, mock_git):
    def fail_push(cmd, quiet=True):
        if cmd[1] == "push":
            raise subprocess.CalledProcessError(1, cmd)

    mock_git.side_effect = fail_push
    with pytest.raises(BackportException, match="pushing branch"):
        Backporter(app_config).backport([100], [], "1.1")
    assert is_backporting(app_config.git_dir)


@pytest.mark.parametrize("launch_kwargs", [{"return_value": 1}, {"side_effect": OSError("no browser")}])
def test_browser_failure_is_a_warning(app_config, mock_git, capsys, launch_kwargs):
    with mock.patch("click.launch", **launch_kwargs):
        Backporter(app_config).backport([100], [], "1.1")
    err = capsys.readouterr().err
    assert "warning: unable to launch web browser" in err
    assert "Submit PR manually at:" in err
    assert commands(mock_git)[-1] == ["git", "checkout", "--no-force", "-"]
    assert not is_backporting(app_config.git_dir)


def test_continue_after_conflict(app_config, mock_git, tmp_path):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    (tmp_path / "CHERRY_PICK_HEAD").write_text("a2\n")

    backporter = Backporter(app_config)
    assert backporter.state == WORKFLOW_STATES.CONFLICTED
    backporter.continue_backport()

    mock_git.assert_any_call(["git", "cherry-pick", "--continue"], quiet=False)
    assert commands(mock_git) == [
        ["git", "cherry-pick", "--continue"],
        ["git", "push", "-u", "--no-force", "origin", "backport1.1-100:backport1.1-100"],
        ["git", "checkout", "--no-force", "-"],
    ]
    assert not is_backporting(app_config.git_dir)
    assert backporter.state == WORKFLOW_STATES.IDLE


def test_continue_without_cherry_pick_in_progress(app_config, mock_git):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    Backporter(app_config).continue_backport()
    assert commands(mock_git)[0][1] == "push"


def test_continue_conflict_again(app_config, mock_git, tmp_path):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    (tmp_path / "CHERRY_PICK_HEAD").write_text("a2\n")
    mock_git.side_effect = subprocess.CalledProcessError(1, ["git", "cherry-pick", "--continue"])

    with pytest.raises(CherryPickException):
        Backporter(app_config).continue_backport()
    assert is_backporting(app_config.git_dir)


def test_continue_without_backport(app_config, mock_git):
    with pytest.raises(BackportException, match="no backport in progress"):
        Backporter(app_config).continue_backport()
    mock_git.assert_not_called()


def test_abort(app_config, mock_git, tmp_path):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    (tmp_path / "CHERRY_PICK_HEAD").write_text("a2\n")

    backporter = Backporter(app_config)
    backporter.abort_backport()

    assert commands(mock_git) == [
        ["git", "cherry-pick", "--abort"],
        ["git", "checkout", "--no-force", "-"],
    ]
    assert not is_backporting(app_config.git_dir)
    assert backporter.state == WORKFLOW_STATES.IDLE


def test_abort_without_cherry_pick_in_progress(app_config, mock_git):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    Backporter(app_config).abort_backport()
    assert commands(mock_git) == [["git", "checkout", "--no-force", "-"]]


def test_abort_without_backport(app_config, mock_git):
    with pytest.raises(BackportException, match="no backport in progress"):
        Backporter(app_config).abort_backport()


def test_start_again_after_abort(app_config, mock_git):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    with pytest.raises(BackportException, match="already in progress"):
        Backporter(app_config).backport([100], [], "1.1")
    Backporter(app_config).abort_backport()
    Backporter(app_config).backport([100], [], "1.1")
    assert not is_backporting(app_config.git_dir)


def test_status(app_config, capsys):
    assert Backporter(app_config).status() == WORKFLOW_STATES.IDLE
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    assert Backporter(app_config).status() == WORKFLOW_STATES.PICKING
    out = capsys.readouterr().out
    assert "state: PICKING" in out
    assert BACKPORT_URL in out


#----------------------------------------------------------------------------------------------
# command line

def test_cli_help():
    result = CliRunner().invoke(backport_cli, ["--help"])
    assert result.exit_code == 0
    assert "--continue" in result.output
    assert "backport --abort" in result.output


def test_cli_no_arguments_prints_help():
    result = CliRunner().invoke(backport_cli, [])
    assert result.exit_code == 0
    assert "Usage:" in result.output


def test_cli_invalid_pr_number():
    with mock.patch("backport.backport.AppConfig.load") as load:
        result = CliRunner().invoke(backport_cli, ["123", "abc"])
    assert result.exit_code == 1
    assert 'fatal: "abc" is not a valid pull request number' in result.output
    load.assert_not_called()


@pytest.mark.parametrize(
    "args",
    [["--continue", "100"], ["--abort", "-c", "a1"], ["--continue", "--abort"], ["--status", "-r", "1.1"]],
)
def test_cli_usage_errors(args):
    result = CliRunner().invoke(backport_cli, args)
    assert result.exit_code == 1
    assert "fatal: usage: backport" in result.output


def test_cli_backport(app_config, mock_git):
    with mock.patch("backport.backport.AppConfig.load", return_value=app_config) as load:
        result = CliRunner().invoke(backport_cli, ["100", "-c", "a2", "-r", "1.1"])
    assert result.exit_code == 0, result.output
    load.assert_called_once_with(force=False, config_path=None)
    assert ["git", "cherry-pick", "a2"] in commands(mock_git)


def test_cli_conflict_hint(app_config, mock_git):
    def fail_cherry_pick(cmd, quiet=True):
        if cmd[1] == "cherry-pick":
            raise subprocess.CalledProcessError(1, cmd)

    mock_git.side_effect = fail_cherry_pick
    with mock.patch("backport.backport.AppConfig.load", return_value=app_config):
        result = CliRunner().invoke(backport_cli, ["100", "-r", "1.1"])
    assert result.exit_code == 1
    assert "fatal: " in result.output
    assert "hint: Automatic cherry-picking failed." in result.output
    assert is_backporting(app_config.git_dir)


def test_cli_rate_limit_hint(app_config):
    with mock.patch("backport.backport.AppConfig.load", return_value=app_config), \
            mock.patch.object(Backporter, "backport",
                              side_effect=RateLimitException("fetching PR #100: GitHub API rate limit exceeded")):
        result = CliRunner().invoke(backport_cli, ["100"])
    assert result.exit_code == 1
    assert "fatal: fetching PR #100: GitHub API rate limit exceeded" in result.output
    assert "hint: unauthenticated GitHub requests" in result.output


def test_cli_missing_remote_hint():
    with mock.patch("backport.backport.load_val_from_git_cfg", return_value=None):
        result = CliRunner().invoke(backport_cli, ["--abort"])
    assert result.exit_code == 1
    assert "fatal: missing cockroach.remote configuration" in result.output
    assert "hint: set cockroach.remote" in result.output


def test_cli_non_json_reply(app_config, mock_git):
    resp = make_response(text="<html>captive portal</html>")
    resp.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
    app_config.github.session.get = mock.Mock(return_value=resp)
    with mock.patch("backport.backport.AppConfig.load", return_value=app_config):
        result = CliRunner().invoke(backport_cli, ["100", "-r", "1.1"])
    assert result.exit_code == 1
    assert "fatal: fetching PR #100: unexpected reply from GitHub" in result.output
    assert not isinstance(result.exception, ValueError)
    mock_git.assert_not_called()


def test_exception_show_writes_to_stderr(capsys):
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        BackportException("no backport in progress", hint="run backport first").show()
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == "fatal: no backport in progress\nhint: run backport first\n"


def test_cli_wraps_git_errors(app_config):
    with mock.patch("backport.backport.AppConfig.load", return_value=app_config), \
            mock.patch.object(Backporter, "status",
                              side_effect=subprocess.CalledProcessError(128, ["git", "status"])):
        result = CliRunner().invoke(backport_cli, ["--status"])
    assert result.exit_code == 1
    assert "fatal: " in result.output


def test_cli_continue_forced(app_config, mock_git):
    save_backport_url(app_config.git_dir, BACKPORT_URL)
    with mock.patch("backport.backport.AppConfig.load", return_value=app_config) as load:
        result = CliRunner().invoke(backport_cli, ["--continue", "-f"])
    assert result.exit_code == 0, result.output
    load.assert_called_once_with(force=True, config_path=None)
