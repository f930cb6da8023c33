#!/usr/bin/env python3
"""
Producer example: send JSON events in batches and report failed batches.
"""

import argparse
import json
import time

from logproducer import MessageToSend, SyncProducer
from logproducer.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description='Synchronous producer example')
    parser.add_argument('--brokers', default='localhost:9092', help='Comma separated seed brokers')
    parser.add_argument('--topic', default='test-topic', help='Topic name')
    parser.add_argument('--messages', type=int, default=100, help='Number of messages to send')
    parser.add_argument('--batch-size', type=int, default=10, help='Messages per send call')
    parser.add_argument('--acks', type=int, default=1, choices=[-1, 0, 1], help='Required acks')
    parser.add_argument('--compression', default=None, help='gzip or snappy')
    args = parser.parse_args()

    configure_logging(log_level='INFO', log_format='console')

    print(f"Producing {args.messages} messages to topic '{args.topic}' "
          f"in batches of {args.batch_size}")

    failed_batches = 0

    with SyncProducer(
        'example-producer',
        args.brokers,
        required_acks=args.acks,
        compression_codec=args.compression,
    ) as producer:
        for start in range(0, args.messages, args.batch_size):
            batch = []
            for i in range(start, min(start + args.batch_size, args.messages)):
                event = {
                    'id': i,
                    'timestamp': int(time.time() * 1000),
                    'value': f'Message number {i}',
                }
                batch.append(MessageToSend(
                    args.topic,
                    json.dumps(event).encode('utf-8'),
                    key=f'key-{i % 10}'.encode('utf-8'),
                ))

            if not producer.send_messages(batch):
                failed_batches += 1

        print(f"\nMetrics: {producer.metrics()}")

    if failed_batches:
        print(f"[FAIL] {failed_batches} batches were not fully delivered")
    else:
        print(f"[OK] Successfully sent {args.messages} messages!")


if __name__ == '__main__':
    main()
