from realtime.change_feed import ChangeEvent, ChangeFeed, ChangeType


def _message(conversation_id: str, type=ChangeType.INSERT) -> ChangeEvent:
    return ChangeEvent(
        table="messages",
        type=type,
        record={"id": "m1", "conversation_id": conversation_id},
    )


def test_publish_honours_table_type_and_predicate():
    feed = ChangeFeed()
    mine = feed.subscribe(
        "messages",
        [ChangeType.INSERT],
        lambda record: record["conversation_id"] == "c1",
    )
    everything = feed.subscribe("messages", [ChangeType.INSERT, ChangeType.UPDATE])
    other_table = feed.subscribe("conversations", [ChangeType.INSERT])

    assert feed.publish(_message("c1")) == 2
    assert feed.publish(_message("c2")) == 1
    assert feed.publish(_message("c1", ChangeType.UPDATE)) == 1

    assert mine.queue.qsize() == 1
    assert everything.queue.qsize() == 3
    assert other_table.queue.empty()


def test_failing_predicate_skips_subscriber():
    feed = ChangeFeed()
    feed.subscribe("messages", [ChangeType.INSERT], lambda record: record["missing"])

    assert feed.publish(_message("c1")) == 0


def test_full_queue_drops_events():
    feed = ChangeFeed(queue_size=1)
    subscription = feed.subscribe("messages", [ChangeType.INSERT])

    feed.publish(_message("c1"))
    feed.publish(_message("c1"))

    assert subscription.queue.qsize() == 1


def test_closed_subscription_is_removed():
    feed = ChangeFeed()
    subscription = feed.subscribe("messages", [ChangeType.INSERT])

    subscription.close()
    subscription.close()

    assert feed.subscription_count == 0
    assert feed.publish(_message("c1")) == 0
