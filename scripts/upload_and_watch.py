"""Upload an image, send both approval decisions and watch it to completion."""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, ".")

from src.client import ImageWorkflowClient, StatusPoller
from src.kernel.events.event_types import ApprovalEventType
from src.schemas.image import UploadedImage


def parse_args():
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument("image", type=Path)
    p.add_argument("--base-url", default=None)
    p.add_argument("--deny-tags", action="store_true", help="reject AI tagging")
    p.add_argument("--deny-alttext", action="store_true", help="reject AI alt text")
    p.add_argument("--interval", type=float, default=None, help="poll interval in seconds")
    return p.parse_args()


async def main():
    args = parse_args()
    done = asyncio.Event()

    def on_update(image: UploadedImage):
        print(f"  [{image.status}] {image.file_name} ({image.instance_id})")
        if image.status in ("complete", "error"):
            print(f"    tags:     {image.tags}")
            print(f"    alt text: {image.alt_text}")
            done.set()

    async with ImageWorkflowClient(args.base_url) as client:
        print(f"Uploading {args.image}...")
        created = await client.upload(args.image.name, args.image.read_bytes())
        instance_id = created["id"]
        print(f"  Instance: {instance_id}")

        async with StatusPoller(on_update, client=client, interval=args.interval) as poller:
            poller.start_polling(instance_id, args.image.name)

            await client.approve(ApprovalEventType.TAG_APPROVAL, instance_id, not args.deny_tags)
            print(f"  Tagging {'denied' if args.deny_tags else 'approved'}")
            await client.approve(ApprovalEventType.ALTTEXT_APPROVAL, instance_id, not args.deny_alttext)
            print(f"  Alt text {'denied' if args.deny_alttext else 'approved'}")

            await done.wait()


if __name__ == "__main__":
    asyncio.run(main())
