from main import _iter_sse_events, _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_user_management_subcommands_available() -> None:
    args = _parse_args(["add-user", "Ana", "ana@test.com", "--no-password"])
    assert args.command == "add-user"
    assert args.email == "ana@test.com"
    assert args.no_password is True

    args = _parse_args(["delete-user", "abc123"])
    assert args.command == "delete-user"
    assert args.user_id == "abc123"


def test_sse_lines_are_grouped_into_events() -> None:
    lines = [
        ": connected",
        "",
        "event: user-registered",
        'data: {"id":"1"}',
        "",
        ": keep-alive",
        "",
    ]

    assert list(_iter_sse_events(iter(lines))) == [("user-registered", '{"id":"1"}')]
