import pytest

from cli.cli import COMMANDS, create_parser, main


def test_parser_submit_lead():
    args = create_parser().parse_args([
        "--api-url", "http://localhost:9000/api",
        "submit-lead",
        "--location-slug", "austin",
        "--name", "Jane",
        "--phone", "5125550100",
        "--email", "jane@example.com",
        "--zip-code", "78701",
        "--project-type", "residential",
        "--timing", "1-3-months",
    ])

    assert args.command == "submit-lead"
    assert args.api_url == "http://localhost:9000/api"
    assert args.timing == "1-3-months"
    assert args.notes is None
    assert COMMANDS[args.command].__name__ == "cmd_submit_lead"


def test_parser_rejects_unknown_status():
    with pytest.raises(SystemExit):
        create_parser().parse_args(["set-status", "1", "archived"])


def test_main_without_command_prints_help(capsys):
    assert main([]) == 1
    assert "LeadCRM CLI" in capsys.readouterr().out


def test_provider_audience_needs_provider_id(capsys):
    assert main(["--audience", "provider", "leads"]) == 1
    assert "--provider-id is required" in capsys.readouterr().out
