import json

import pytest
from fastapi.testclient import TestClient

from app.services import design_systems
from app.services.design_systems import (
    DesignSystemConfigError,
    detect_design_system,
    get_design_system,
    list_design_system_options,
    load_design_systems,
)


def test_index_order_is_priority_order():
    systems = load_design_systems()
    assert systems[0].id == "product-hunt-launch"
    assert systems[-1].id == "corporate-professional"
    assert len({system.id for system in systems}) == len(systems)


def test_detects_highest_scoring_system():
    assert detect_design_system("Black Friday flash sale: 40% off with promo code BF40").id == "ecommerce-discount"
    assert detect_design_system("Our weekly newsletter digest with blog insights").id == "newsletter-editorial"
    assert detect_design_system("We are launching today on Product Hunt, please upvote").id == "product-hunt-launch"


def test_detection_is_case_insensitive():
    assert detect_design_system("QUARTERLY EARNINGS FOR SHAREHOLDERS").id == "corporate-professional"


def test_ties_go_to_the_earlier_system():
    systems = load_design_systems()
    ids = [system.id for system in systems]
    prompt = "sale on travel"
    ecommerce = get_design_system("ecommerce-discount")
    travel = get_design_system("travel-booking")
    assert ecommerce.score(prompt) == 1
    assert travel.score(prompt) == 1
    assert ids.index("ecommerce-discount") < ids.index("travel-booking")
    assert detect_design_system(prompt).id == "ecommerce-discount"


def test_no_match_returns_first_system(caplog):
    caplog.set_level("INFO", logger="app.services.design_systems")
    chosen = detect_design_system("zzz qqq xxx")
    assert chosen.id == load_design_systems()[0].id
    assert any("No design system keywords matched" in record.getMessage() for record in caplog.records)


def test_get_and_list_design_systems():
    assert get_design_system("saas-product").name == "SaaS Product"
    assert get_design_system("does-not-exist") is None
    options = list_design_system_options()
    assert options[0] == {"id": "product-hunt-launch", "name": "Product Hunt Launch"}
    assert len(options) == len(load_design_systems())


def test_missing_record_raises_config_error(tmp_path, monkeypatch):
    (tmp_path / "index.json").write_text(json.dumps({"order": ["ghost"]}), encoding="utf-8")
    monkeypatch.setattr(design_systems, "_design_systems_dir", lambda: tmp_path)
    load_design_systems.cache_clear()
    try:
        with pytest.raises(DesignSystemConfigError):
            load_design_systems()
    finally:
        monkeypatch.undo()
        load_design_systems.cache_clear()


def test_design_systems_endpoint(api_client: TestClient):
    resp = api_client.get("/ai/design-systems")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert {"id": "saas-product", "name": "SaaS Product"} in body["data"]
