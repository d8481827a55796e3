import pytest

from unsealer.bus import GlobalEventBus
from unsealer.config import UnsealerConfig
from unsealer.services.vault.credentials import FileCredentialProvider
from unsealer.services.vault.key_source import KeySourceClient
from unsealer.services.vault.seal_probe import SealStateProber
from unsealer.services.vault.unseal_driver import UnsealDriver

PRIMARY = "https://primary:8200"
TARGET_A = "https://vault-1:8200"
TARGET_B = "https://vault-2:8200"


class FakeNode:
    """Ein simulierter Vault-Node. Antworten und Fehler werden pro Test gesetzt."""

    def __init__(self, url):
        self.url = url
        self.seal_status = {"sealed": False, "t": 3, "progress": 0}
        self.probe_error = None
        # Liste von dicts oder Exceptions, eine pro Unseal-Aufruf
        self.unseal_responses = []
        self.submitted = []
        self.login_response = {"auth": {"client_token": "s.primary-token"}}
        self.login_error = None
        self.logins = []
        self.kv_response = {"data": {"data": {"key1": "k1", "key2": "k2", "key3": "k3"}}}
        self.read_error = None
        self.reads = []
        self.probes = 0


class _FakeSys:
    def __init__(self, node):
        self.node = node

    def read_seal_status(self):
        self.node.probes += 1
        if self.node.probe_error:
            raise self.node.probe_error
        return self.node.seal_status

    def submit_unseal_key(self, key=None, reset=False, migrate=False):
        self.node.submitted.append(key)
        response = self.node.unseal_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _FakeKubernetes:
    def __init__(self, node):
        self.node = node

    def login(self, role, jwt, use_token=True, mount_point="kubernetes"):
        self.node.logins.append({"role": role, "jwt": jwt, "use_token": use_token, "mount_point": mount_point})
        if self.node.login_error:
            raise self.node.login_error
        return self.node.login_response


class _FakeAuth:
    def __init__(self, node):
        self.kubernetes = _FakeKubernetes(node)


class FakeClient:
    def __init__(self, node, token=None, namespace=None):
        self.node = node
        self.token = token
        self.namespace = namespace
        self.sys = _FakeSys(node)
        self.auth = _FakeAuth(node)

    def read(self, path, wrap_ttl=None):
        self.node.reads.append({"path": path, "token": self.token, "namespace": self.namespace})
        if self.node.read_error:
            raise self.node.read_error
        return self.node.kv_response


class FakeTransport:
    def __init__(self, *urls):
        self.nodes = {url: FakeNode(url) for url in urls}
        self.clients = []

    def client(self, url, token=None, namespace=None):
        self.clients.append({"url": url, "token": token, "namespace": namespace})
        return FakeClient(self.nodes[url], token=token, namespace=namespace)


@pytest.fixture
def jwt_file(tmp_path):
    path = tmp_path / "token"
    path.write_text("eyJhbGciOi.jwt.sig\n")
    return path


@pytest.fixture
def config(jwt_file):
    return UnsealerConfig(
        primary_vault_addr=PRIMARY,
        target_vault_addrs=(TARGET_A, TARGET_B),
        poll_interval_ms=20,
        jwt_token_path=str(jwt_file),
    )


@pytest.fixture
def transport():
    return FakeTransport(PRIMARY, TARGET_A, TARGET_B)


@pytest.fixture
def key_source(config, transport):
    return KeySourceClient(config, transport, FileCredentialProvider(config.jwt_token_path))


@pytest.fixture
def driver(transport, key_source):
    return UnsealDriver(SealStateProber(transport), key_source, transport)


@pytest.fixture
def event_bus():
    return GlobalEventBus()
