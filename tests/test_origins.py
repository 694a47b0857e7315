import pytest

from visual_edits.origins import OriginPolicy

POLICY = OriginPolicy(
    exact_origins=("https://app.example.onrender.com",),
    wildcard_domains=("emergent.sh", "emergentagent.com"),
)


@pytest.mark.parametrize(
    "origin",
    [
        "http://localhost",
        "http://localhost:3000",
        "https://127.0.0.1:8443",
        "https://app.example.onrender.com",
        "https://emergent.sh",
        "https://preview.emergentagent.com",
        "https://a.b-c.emergentagent.com",
    ],
)
def test_allowed_origins(origin):
    assert POLICY.is_allowed(origin)


@pytest.mark.parametrize(
    "origin",
    [
        None,
        "",
        "null",
        "http://preview.emergentagent.com",
        "https://evilemergentagent.com",
        "https://emergentagent.com.evil.io",
        "https://localhost.evil.io",
        "http://localhost:3000/path",
        "http://localhost:3000\n",
        "https://app.example.onrender.com.evil",
    ],
)
def test_rejected_origins(origin):
    assert not POLICY.is_allowed(origin)


def test_localhost_can_be_disabled():
    policy = OriginPolicy(allow_localhost=False)
    assert not policy.is_allowed("http://localhost:3000")


def test_from_config(make_config):
    policy = OriginPolicy.from_config(make_config(allow_localhost=False))
    assert policy.is_allowed("https://x.emergentagent.com")
    assert policy.is_allowed("https://app.example.onrender.com")
    assert not policy.is_allowed("http://127.0.0.1:5173")
