import pytest

import quick_quote
from deliverymaster import llm_client

from conftest import DummyLLMClient

QUOTE_REPLY = {
    "distancia_km": 15,
    "tempo_minutos": 30,
    "preco_estimado": 19.25,
    "rota_mapa_url": "https://maps.google.com/route",
}


@pytest.fixture()
def db_path(tmp_path):
    return str(tmp_path / "deliveries.db")


def _use_client(monkeypatch, *replies):
    client = DummyLLMClient(*replies)
    monkeypatch.setattr(llm_client, "_LLM_CLIENT", client)
    return client


def test_quote_is_saved_and_link_printed(monkeypatch, capsys, db_path) -> None:
    client = _use_client(monkeypatch, QUOTE_REPLY)

    code = quick_quote.main(
        ["--stop", "Point A", "--stop", "Point B", "--stop", "Point C", "--optimize",
         "--yes", "--no-browser", "--db", db_path]
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "R$ 19,25" in out
    assert "https://wa.me/" in out
    assert "Otimizar rota (menor caminho): Sim" in client.prompts[0]

    assert quick_quote.main(["--history", "--db", db_path]) == 0
    listing = capsys.readouterr().out
    assert "pending" in listing
    assert "3 stops" in listing


def test_no_save_leaves_history_empty(monkeypatch, capsys, db_path) -> None:
    _use_client(monkeypatch, QUOTE_REPLY)
    assert quick_quote.main(["--stop", "A", "--stop", "B", "--no-save", "--db", db_path]) == 0
    capsys.readouterr()

    quick_quote.main(["--history", "--db", db_path])
    assert "No deliveries recorded yet." in capsys.readouterr().out


def test_cancel_pending_delivery(monkeypatch, capsys, db_path) -> None:
    _use_client(monkeypatch, QUOTE_REPLY)
    quick_quote.main(["--stop", "A", "--stop", "B", "--yes", "--no-browser", "--db", db_path])
    out = capsys.readouterr().out
    delivery_id = next(
        word.rstrip(".") for word in out.split() if word.startswith("entrega-")
    )

    assert quick_quote.main(["--cancel", delivery_id, "--db", db_path]) == 0
    assert quick_quote.main(["--cancel", delivery_id, "--db", db_path]) == 1


def test_single_stop_is_rejected(capsys, db_path) -> None:
    assert quick_quote.main(["--stop", "Only", "--db", db_path]) == 1
    assert "At least 2 stops" in capsys.readouterr().out


def test_service_failure_returns_error(monkeypatch, capsys, db_path) -> None:
    _use_client(monkeypatch, "not json")
    assert quick_quote.main(["--stop", "A", "--stop", "B", "--db", db_path]) == 1
    assert "Não foi possível calcular a rota" in capsys.readouterr().out


def test_interactive_entry(monkeypatch, capsys, db_path) -> None:
    client = _use_client(monkeypatch, QUOTE_REPLY)
    answers = iter(["Rua A", "", "", "Rua B", "Apto 3", "Portaria", "n", "n"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    assert quick_quote.main(["--no-browser", "--db", db_path]) == 0
    assert "Quote discarded." in capsys.readouterr().out
    assert "Ponto 2: Rua B (Apto 3)" in client.prompts[0]
