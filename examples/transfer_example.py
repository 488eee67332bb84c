#!/usr/bin/env python3
"""
Transaction example: move an amount between two account documents.
"""

import argparse
import asyncio

from docstore import CancellationTokenSource, Database, TransactionOptions
from docstore.utils.config import Config
from docstore.utils.logging import configure_logging


async def transfer(
    database: Database,
    options: TransactionOptions,
    source_id: str,
    target_id: str,
    amount: int,
    timeout_s: float,
) -> None:
    accounts = database.collection("accounts")

    async def move(transaction):
        # All reads first...
        source = await transaction.get_document(accounts.document(source_id))
        target = await transaction.get_document(accounts.document(target_id))

        balance = source.get("balance", 0)
        if balance < amount:
            raise ValueError(f"Insufficient funds in {source_id}: {balance}")

        # ...then the writes.
        transaction.update(source.reference, {"balance": balance - amount})
        transaction.set(target.reference, {"balance": target.get("balance", 0) + amount})
        return balance - amount

    with CancellationTokenSource() as deadline:
        deadline.cancel_after(timeout_s)
        remaining = await database.run_transaction(
            move,
            options,
            deadline.token,
        )

    print(f"[OK] Moved {amount} from {source_id} to {target_id}; {remaining} left")


def main():
    parser = argparse.ArgumentParser(description='docstore transaction example')
    parser.add_argument('--config', default=None, help='YAML configuration file')
    parser.add_argument('--source', default='alice', help='Source account id')
    parser.add_argument('--target', default='bob', help='Target account id')
    parser.add_argument('--amount', type=int, default=10, help='Amount to move')
    parser.add_argument('--timeout', type=float, default=30.0, help='Deadline in seconds')
    args = parser.parse_args()

    config = Config(args.config)
    configure_logging(
        log_level=config.get("logging.level", "INFO"),
        log_format=config.get("logging.format", "console"),
    )

    async def run():
        database = Database.from_config(config)
        try:
            await transfer(
                database,
                TransactionOptions.from_config(config),
                args.source,
                args.target,
                args.amount,
                args.timeout,
            )
        finally:
            await database.close()

    asyncio.run(run())


if __name__ == '__main__':
    main()
