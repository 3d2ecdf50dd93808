"""Tests for resolving the pods behind an object."""

from appquery.pods import PodResolver, pod_selector

from factories import deployment, helm_release, pod, release_labels, service


def _names(pods) -> list[str]:
    return [p["metadata"]["name"] for p in pods]


class TestPodSelector:
    """Tests for pod_selector()."""

    def test_match_labels(self) -> None:
        assert pod_selector(deployment("web", {"app": "web", "tier": "fe"})) == {"app": "web", "tier": "fe"}

    def test_service_selector(self) -> None:
        """Services carry a plain label map as selector."""
        assert pod_selector(service("web", selector={"app": "web"})) == {"app": "web"}

    def test_template_labels(self) -> None:
        """Objects without a selector fall back to their pod template labels."""
        obj = {"kind": "Widget", "spec": {"template": {"metadata": {"labels": {"app": "w"}}}}}
        assert pod_selector(obj) == {"app": "w"}

    def test_no_selector(self) -> None:
        assert pod_selector({"kind": "ConfigMap", "data": {}}) == {}


class TestStrategyDispatch:
    """Tests for PodResolver.strategy_for()."""

    def test_workloads_and_services_use_selector(self, store) -> None:
        resolver = PodResolver(store)
        assert resolver.strategy_for(deployment("web", {"app": "web"})) == resolver.selector_pods
        assert resolver.strategy_for(deployment("db", {"app": "db"}, kind="StatefulSet")) == resolver.selector_pods
        assert resolver.strategy_for(service("web", selector={"app": "web"})) == resolver.selector_pods

    def test_release_uses_bundle_strategy(self, store) -> None:
        resolver = PodResolver(store)
        assert resolver.strategy_for(helm_release("shop")) == resolver.release_pods

    def test_unsupported_kind_falls_back_to_selector(self, store) -> None:
        resolver = PodResolver(store)
        assert resolver.strategy_for({"apiVersion": "v1", "kind": "ConfigMap"}) == resolver.selector_pods
        assert resolver.strategy_for(helm_release("shop", api_version="helm.toolkit.fluxcd.io/v2")) == resolver.selector_pods


class TestGenericResolution:
    """Tests for objects resolved through their label selector."""

    def test_lists_matching_pods_in_object_namespace_on_cluster(self, store) -> None:
        """Only pods with matching labels, namespace and cluster are returned."""
        store.add(pod("web-1", {"app": "web"}), cluster="east")
        store.add(pod("web-2", {"app": "web", "extra": "x"}), cluster="east")
        store.add(pod("api-1", {"app": "api"}), cluster="east")
        store.add(pod("web-other-ns", {"app": "web"}, namespace="other"), cluster="east")
        store.add(pod("web-west", {"app": "web"}), cluster="west")

        pods = PodResolver(store).resolve(deployment("web", {"app": "web"}), "east")

        assert _names(pods) == ["web-1", "web-2"]
        assert store.list_calls[-1]["namespace"] == "default"
        assert store.list_calls[-1]["label_selector"] == "app=web"

    def test_service_pods(self, store) -> None:
        store.add(pod("web-1", {"app": "web"}))
        assert _names(PodResolver(store).resolve(service("web", selector={"app": "web"}), "")) == ["web-1"]

    def test_unknown_kind_falls_back_to_selector(self, store) -> None:
        """Kinds without a dedicated strategy still resolve through their labels."""
        store.add(pod("w-1", {"app": "w"}))
        obj = {
            "apiVersion": "example.com/v1",
            "kind": "Widget",
            "metadata": {"name": "w", "namespace": "default"},
            "spec": {"selector": {"matchLabels": {"app": "w"}}},
        }
        assert _names(PodResolver(store).resolve(obj, "")) == ["w-1"]

    def test_no_selector_yields_no_pods(self, store) -> None:
        """Without a selector nothing is listed rather than every pod."""
        store.add(pod("web-1", {"app": "web"}))
        obj = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "c", "namespace": "default"}}
        assert PodResolver(store).resolve(obj, "") == []
        assert store.list_calls == []

    def test_selector_matching_nothing(self, store) -> None:
        assert PodResolver(store).resolve(deployment("web", {"app": "web"}), "") == []


class TestReleaseResolution:
    """Tests for release bundles."""

    def test_unions_pods_of_managed_workloads(self, store) -> None:
        """Pods of every Deployment and StatefulSet of the release are collected."""
        labels = release_labels("shop")
        store.add(deployment("web", {"app": "web"}, labels=labels), cluster="east")
        store.add(deployment("db", {"app": "db"}, labels=labels, kind="StatefulSet"), cluster="east")
        store.add(deployment("unrelated", {"app": "x"}), cluster="east")
        store.add(pod("web-1", {"app": "web"}), cluster="east")
        store.add(pod("db-0", {"app": "db"}), cluster="east")
        store.add(pod("x-1", {"app": "x"}), cluster="east")

        pods = PodResolver(store).resolve(helm_release("shop"), "east")

        assert _names(pods) == ["web-1", "db-0"]

    def test_pods_selected_twice_are_returned_once(self, store) -> None:
        """A Service selecting the same pods as a Deployment adds no duplicates."""
        labels = release_labels("shop")
        store.add(deployment("web", {"app": "web"}, labels=labels))
        store.add(service("web", selector={"app": "web"}, labels=labels))
        store.add(pod("web-1", {"app": "web"}))

        assert _names(PodResolver(store).resolve(helm_release("shop"), "")) == ["web-1"]

    def test_failing_kind_is_skipped(self, store) -> None:
        """A managed kind that cannot be listed does not stop the others."""
        labels = release_labels("shop")
        store.fail_list("apps/v1", "Deployment")
        store.add(deployment("db", {"app": "db"}, labels=labels, kind="StatefulSet"))
        store.add(pod("db-0", {"app": "db"}))

        assert _names(PodResolver(store).resolve(helm_release("shop"), "")) == ["db-0"]

    def test_other_release_versions_are_not_bundles(self, store) -> None:
        """Only v2beta1 releases use the bundle strategy."""
        store.add(deployment("web", {"app": "web"}, labels=release_labels("shop")))
        store.add(pod("web-1", {"app": "web"}))
        release = helm_release("shop", api_version="helm.toolkit.fluxcd.io/v1")
        assert PodResolver(store).resolve(release, "") == []
