from storefront.app.core.events import CartEvent, CartEventBus
from storefront.app.models.cart import CartAggregate


def test_publish_in_subscription_order_and_unsubscribe():
    bus = CartEventBus()
    seen = []
    unsub_a = bus.subscribe(lambda ev: seen.append(("a", ev.op)))
    bus.subscribe(lambda ev: seen.append(("b", ev.op)))
    assert len(bus) == 2

    bus.publish(CartEvent(op="add", snapshot=CartAggregate.empty()))
    unsub_a()
    unsub_a()  # second call is harmless
    bus.publish(CartEvent(op="clear", snapshot=CartAggregate.empty()))

    assert seen == [("a", "add"), ("b", "add"), ("b", "clear")]


def test_listener_may_unsubscribe_itself():
    bus = CartEventBus()
    seen = []
    holder = {}

    def once(ev):
        seen.append(ev.op)
        holder["unsub"]()

    holder["unsub"] = bus.subscribe(once)
    bus.publish(CartEvent(op="add", snapshot=CartAggregate.empty()))
    bus.publish(CartEvent(op="add", snapshot=CartAggregate.empty()))
    assert seen == ["add"]
    assert len(bus) == 0
