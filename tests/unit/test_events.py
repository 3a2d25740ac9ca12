from stepwright.events import EventNotifier


def test_subscribers_match_glob_patterns():
    notifier = EventNotifier()
    seen = []
    notifier.subscribe("step.*", lambda event, payload: seen.append(event))
    notifier.subscribe("chat_completion.complete", lambda event, payload: seen.append(payload["model"]))

    notifier.instrument("step.start", step_name="fetch")
    notifier.instrument("chat_completion.complete", model="openai:gpt-4o")
    notifier.instrument("chat_completion.start", model="openai:gpt-4o")

    assert seen == ["step.start", "openai:gpt-4o"]


def test_unsubscribe_and_failing_subscriber(caplog):
    notifier = EventNotifier()
    seen = []

    def broken(event, payload):
        raise RuntimeError("subscriber bug")

    callback = notifier.subscribe("*", lambda event, payload: seen.append(event))
    notifier.subscribe("*", broken)

    with caplog.at_level("WARNING"):
        notifier.instrument("step.complete")
    assert seen == ["step.complete"]
    assert "subscriber bug" in caplog.text

    notifier.unsubscribe(callback)
    notifier.instrument("step.error")
    assert seen == ["step.complete"]
