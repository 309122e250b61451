import uvicorn

from creator_match import main


def test_main_serves_app_with_configured_address(monkeypatch):
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    main.main()

    assert calls == [
        (
            "creator_match.main:app",
            {
                "host": main.settings.host,
                "port": main.settings.port,
                "log_level": main.settings.log_level.lower(),
            },
        )
    ]
