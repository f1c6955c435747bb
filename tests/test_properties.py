"""Property-based tests for the reconciler."""
import re

from hypothesis import given, settings
from hypothesis import strategies as st

from discovery.models import ProbeResult, ServiceRecord
from discovery.reconciler import Reconciler, clean_service_name

MAC_TOKEN = re.compile(r'\[([0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}\]')

octets = st.integers(min_value=1, max_value=254)
hex_pair = st.text(alphabet="0123456789abcdefABCDEF", min_size=2, max_size=2)
mac_tokens = st.lists(hex_pair, min_size=6, max_size=6).map(lambda p: "[" + ":".join(p) + "]")
labels = st.text(alphabet="abcdefghijklmnopqrstuvwxyz ABC-0123456789", min_size=0, max_size=20)


@st.composite
def probe_batches(draw):
    ips = draw(st.lists(octets, unique=True, max_size=20))
    return [
        ProbeResult(ip=f"10.0.0.{o}", hostname=draw(st.one_of(st.none(), labels)), reachable=True)
        for o in ips
    ]


class TestCleanServiceNameProperties:

    @given(st.text(min_size=1).filter(lambda s: s.strip()))
    def test_never_empty(self, name):
        assert clean_service_name(name) != ""

    @given(labels, mac_tokens, labels)
    def test_mac_tokens_removed(self, before, mac, after):
        name = f"{before}x {mac}{after}"
        assert MAC_TOKEN.search(clean_service_name(name)) is None


class TestReconcilerProperties:

    @settings(max_examples=50)
    @given(probe_batches())
    def test_view_sorted_by_last_octet(self, batch):
        reconciler = Reconciler()
        reconciler.on_probe_batch(batch)
        octs = [d.last_octet for d in reconciler.current_view()]
        assert octs == sorted(octs)

    @settings(max_examples=50)
    @given(probe_batches(), st.randoms(use_true_random=False))
    def test_order_independent_of_arrival(self, batch, rnd):
        first, second = Reconciler(), Reconciler()
        first.on_probe_batch(batch)
        shuffled = list(batch)
        rnd.shuffle(shuffled)
        second.on_probe_batch(shuffled)
        assert first.current_view() == second.current_view()

    @settings(max_examples=50)
    @given(probe_batches(), st.lists(octets, max_size=10))
    def test_replay_is_idempotent(self, batch, service_octets):
        reconciler = Reconciler()
        records = [(f"10.0.0.{o}", ServiceRecord(f"svc{o}", "_http._tcp", 80)) for o in service_octets]

        def replay():
            reconciler.on_probe_batch(batch)
            for ip, record in records:
                reconciler.on_service_resolved(ip, record)
            return reconciler.current_view()

        assert replay() == replay()
