"""Security engine service: reads platform events, publishes alerts.

Consumes activity, auth-failure and data-access events from Kafka, runs
them through the SecurityEngine, and produces every published alert to the
alerts topic for dashboards and on-call tooling.  Point several instances
at one Redis with --redis-url to share counters across the consumer group.

Usage:
    python -m activity_guard.main
    python -m activity_guard.main --bootstrap-servers kafka-1:29092 --redis-url redis://cache:6379/0
    python -m activity_guard.main --config config/thresholds.yml --metrics-port 9108
"""

import argparse
import json
import signal
import sys

from confluent_kafka import Consumer, KafkaError, Producer
from confluent_kafka.admin import AdminClient, NewTopic
from prometheus_client import Counter, start_http_server

from activity_guard.config import GuardConfig, load_config
from activity_guard.engine import SecurityEngine

malformed_messages_total = Counter(
    "activity_guard_malformed_messages_total",
    "Kafka messages that could not be decoded or dispatched",
)

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down security engine...")
    running = False


def _ensure_topic(bootstrap_servers, topic):
    """Create the output topic if it doesn't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    fs = admin.create_topics([NewTopic(topic, num_partitions=3, replication_factor=3)])
    for t, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{t}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{t}' already exists")
            else:
                raise


def kafka_alert_sink(producer, topic):
    """AlertStore sink producing each alert as JSON, keyed by alert id."""
    def _produce(alert):
        producer.produce(
            topic,
            key=alert.id,
            value=json.dumps(alert.to_dict(), default=str).encode("utf-8"),
        )
        print(f"ALERT  type={alert.alert_type.value:<22s} "
              f"severity={alert.severity:<8s} id={alert.id}")
    return _produce


def build_engine(config_path=None, redis_url=None) -> SecurityEngine:
    config = load_config(config_path) if config_path else GuardConfig()
    store = None
    if redis_url:
        from activity_guard.redis_store import RedisStore
        store = RedisStore.from_url(redis_url)
    return SecurityEngine(config, store)


def main():
    parser = argparse.ArgumentParser(description="Security engine service")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--input-topic", default="security-events")
    parser.add_argument("--output-topic", default="security-alerts")
    parser.add_argument("--group-id", default="activity-guard")
    parser.add_argument("--config", help="YAML thresholds file")
    parser.add_argument("--redis-url", help="share state through Redis instead of memory")
    parser.add_argument("--metrics-port", type=int, default=9108)
    args = parser.parse_args()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    # Bad thresholds fail here, before any traffic is consumed.
    engine = build_engine(args.config, args.redis_url)

    _ensure_topic(args.bootstrap_servers, args.output_topic)
    start_http_server(args.metrics_port)
    print(f"Prometheus metrics server started on :{args.metrics_port}")

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.input_topic])

    producer = Producer({"bootstrap.servers": args.bootstrap_servers})
    engine.alerts.add_sink(kafka_alert_sink(producer, args.output_topic))

    consumed = 0
    print(f"Security engine started  input={args.input_topic}  "
          f"output={args.output_topic}")

    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                event = json.loads(msg.value().decode("utf-8"))
                engine.handle(event)
            # ValueError covers JSONDecodeError and UnicodeDecodeError.
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                malformed_messages_total.inc()
                print(f"Skipping malformed event: {e!r}", file=sys.stderr)
                continue
            consumed += 1

            # Serve delivery callbacks without blocking; flush in batches.
            producer.poll(0)
            if consumed % 1000 == 0:
                producer.flush()

            if consumed % 500 == 0:
                print(f"  ... {consumed} events consumed")
    finally:
        producer.flush()
        consumer.close()
        print(f"Done. {consumed} events consumed.")


if __name__ == "__main__":
    main()
