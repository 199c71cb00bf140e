from __future__ import annotations

from pyconnect.meta import MetaStore


def test_defaults() -> None:
    meta = MetaStore()
    assert meta.get("env") == "production"
    assert meta.get_all() == {"env": "production", "page": {}, "site": {}, "features": {}}


def test_init_is_a_shallow_merge() -> None:
    meta = MetaStore({"site": {"name": "Blog"}})
    meta.init({"features": {"beta": True}})

    assert meta.get("site.name") == "Blog"
    assert meta.get("features") == {"beta": True}
    assert meta.get("env") == "production"


def test_dot_paths() -> None:
    meta = MetaStore()
    meta.set("page.author.name", "Ada")

    assert meta.get("page.author.name") == "Ada"
    assert meta.get("page.author.missing", "n/a") == "n/a"
    assert meta.get("env.nested") is None


def test_set_replaces_non_dict_intermediates() -> None:
    meta = MetaStore()
    meta.set("env", "dev")
    meta.set("env.region", "eu")
    assert meta.get("env") == {"region": "eu"}


def test_has_treats_false_and_none_as_absent() -> None:
    meta = MetaStore({"features": {"on": True, "off": False, "zero": 0, "unset": None}})
    assert meta.has("features.on")
    assert meta.has("features.zero")
    assert not meta.has("features.off")
    assert not meta.has("features.unset")
    assert not meta.has("features.missing")


def test_get_all_returns_a_copy() -> None:
    source = {"site": {"name": "Blog"}}
    meta = MetaStore(source)
    source["site"]["name"] = "changed"
    snapshot = meta.get_all()
    snapshot["site"]["name"] = "also changed"

    assert meta.get("site.name") == "Blog"
