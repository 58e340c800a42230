import argparse
import json
import sys

from verianchor.audit.reconciler import AuthenticityReconciler
from verianchor.config import AnchorConfig
from verianchor.content.gateway import ContentGateway
from verianchor.errors import AnchorError
from verianchor.ledger.codec import decode_log_message
from verianchor.ledger.reader import MirrorLogReader

# ANSI Colors
OK = '\033[92m'
FAIL = '\033[91m'
WARN = '\033[93m'
RESET = '\033[0m'


def check_anchor(transaction_id: str, topic_id: str = None) -> int:
    config = AnchorConfig.from_env()
    reader = MirrorLogReader(config)
    reconciler = AuthenticityReconciler(reader, ContentGateway(config), topic_id=topic_id)

    print(f"\n=== ANCHOR CHECK: {transaction_id} ===\n")
    print(f"Mirror node: {config.mirror_node_url}")
    print(f"Gateway:     {config.ipfs_gateway}\n")

    try:
        entries = reader.fetch_by_transaction_id(topic_id, transaction_id)
        if entries:
            print("Anchored message:")
            print(json.dumps(decode_log_message(entries[0]), indent=2, default=str))
            print()

        verdict = reconciler.verify({"anchor_reference": transaction_id})
    except AnchorError as e:
        print(f"{WARN}COULD NOT CHECK ({type(e).__name__}): {e}{RESET}")
        return 2

    for key, value in verdict.to_dict().items():
        print(f"  {key:<13} {value}")

    if verdict.success:
        print(f"\n{OK}PASS{RESET}")
        return 0
    print(f"\n{FAIL}FAIL{RESET}")
    return 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Verify one anchored record against its content.")
    parser.add_argument("transaction_id")
    parser.add_argument("--topic", default=None, help="Topic id (defaults to HEDERA_TOPIC_ID)")
    args = parser.parse_args()
    sys.exit(check_anchor(args.transaction_id, args.topic))
