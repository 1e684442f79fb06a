"""Weekly campaign dispatch.

Coordinates many short, possibly overlapping scheduler invocations so the
weekly meal plan email reaches every eligible recipient once:

- ``lease``: single-holder, time-boxed lock per campaign key
- ``checkpoint``: durable progress record per campaign key
- ``recipients``: stable, resumable source of eligible recipients
- ``dispatcher``: per-second rate-limited chunked delivery
- ``runner``: one invocation of the state machine
"""
