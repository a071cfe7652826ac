import datetime
import kopf


@kopf.on.probe(id="now")
def get_current_timestamp(**kwargs):
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@kopf.on.probe(id="queue_depth")
def get_queue_depth(memo: kopf.Memo, **kwargs):
    queue = getattr(memo, "queue", None)
    return len(queue) if queue is not None else 0
