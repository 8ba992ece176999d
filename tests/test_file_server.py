from ocvsmd.file_provider import MAX_ROOT_PATH_LEN, FileProvider
from ocvsmd.file_server import (
    ListRootsService,
    PopRootService,
    PushRootService,
    RootRequest,
    all_services,
)


class FakeConfig:
    def __init__(self, roots):
        self.roots = list(roots)
        self.saved = None

    def file_server_roots(self):
        return list(self.roots)

    def set_file_server_roots(self, roots):
        self.saved = list(roots)


class FakeChannel:
    def __init__(self, send_error=0):
        self.sent = []
        self.completed = []
        self.send_error = send_error

    def send(self, response):
        self.sent.append(response)
        return self.send_error

    def complete(self, error=0):
        self.completed.append(error)


def make_provider(roots):
    config = FakeConfig(roots)
    return FileProvider(config), config


def test_list_roots_sends_each_root_then_completes():
    provider, _ = make_provider(["/a", "/b"])
    channel = FakeChannel()
    ListRootsService(provider)(channel, None)
    assert channel.sent == ["/a", "/b"]
    assert channel.completed == [0]


def test_list_roots_skips_too_long_root():
    long_root = "/" + "x" * MAX_ROOT_PATH_LEN
    provider, _ = make_provider(["/a", long_root, "/b"])
    channel = FakeChannel()
    ListRootsService(provider)(channel, None)
    assert channel.sent == ["/a", "/b"]


def test_list_roots_completes_even_when_send_fails():
    provider, _ = make_provider(["/a"])
    channel = FakeChannel(send_error=5)
    ListRootsService(provider)(channel, None)
    assert channel.sent == ["/a"]
    assert channel.completed == [0]


def test_list_roots_with_no_roots_only_completes():
    provider, _ = make_provider([])
    channel = FakeChannel()
    ListRootsService(provider)(channel, None)
    assert channel.sent == []
    assert channel.completed == [0]


def test_push_root_front_and_back():
    provider, config = make_provider(["/a"])
    service = PushRootService(provider)
    channel = FakeChannel()
    service(channel, RootRequest(path="/front", is_back=False))
    service(channel, RootRequest(path="/back", is_back=True))
    assert provider.list_of_roots() == ["/front", "/a", "/back"]
    assert config.saved == ["/front", "/a", "/back"]
    assert channel.completed == [0, 0]


def test_pop_root_back_removes_last_occurrence():
    provider, config = make_provider(["/a", "/b", "/a"])
    channel = FakeChannel()
    PopRootService(provider)(channel, RootRequest(path="/a", is_back=True))
    assert provider.list_of_roots() == ["/a", "/b"]
    assert config.saved == ["/a", "/b"]
    assert channel.completed == [0]


def test_pop_root_front_removes_first_occurrence():
    provider, _ = make_provider(["/a", "/b", "/a"])
    channel = FakeChannel()
    PopRootService(provider)(channel, RootRequest(path="/a", is_back=False))
    assert provider.list_of_roots() == ["/b", "/a"]


def test_pop_unknown_root_keeps_roots_and_completes():
    provider, config = make_provider(["/a"])
    channel = FakeChannel()
    PopRootService(provider)(channel, RootRequest(path="/zzz"))
    assert provider.list_of_roots() == ["/a"]
    assert config.saved is None
    assert channel.completed == [0]


def test_all_services_share_provider():
    provider, _ = make_provider(["/a"])
    services = all_services(provider)
    assert [type(s) for s in services] == [ListRootsService, PopRootService, PushRootService]
    push = services[2]
    push(FakeChannel(), RootRequest(path="/b", is_back=True))
    channel = FakeChannel()
    services[0](channel, None)
    assert channel.sent == ["/a", "/b"]