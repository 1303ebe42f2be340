class StepClock:
    """Advances one second per reading so update times are strictly ordered."""

    def __init__(self, start=1_700_000_000.0):
        self.t = start

    def __call__(self):
        self.t += 1
        return self.t


def events(outbound, event, to=None):
    return [o.payload for o in outbound if o.event == event and (to is None or o.to == to)]


def received(client, event):
    return [m["args"][0] for m in client.get_received() if m["name"] == event]
