#!/usr/bin/env python3
"""
Submit a generation request and wait for the result
===================================================
Talks to a running MediaGen API.

Usage:
    python scripts/generate.py text-to-image "a red fox in snow"
    python scripts/generate.py text-to-video "waves at sunset" --duration 6 --aspect-ratio 16:9
    python scripts/generate.py image-to-video "slow zoom in" --image photo.png
"""

import argparse
import os
import sys

from app.client import GenerationClient, GenerationClientError

MODES = ["text-to-video", "image-to-video", "text-to-image"]


def build_parameters(args) -> dict:
    parameters = {}
    if args.duration:
        parameters["duration"] = args.duration
    if args.aspect_ratio:
        parameters["aspectRatio"] = args.aspect_ratio
    if args.quality:
        parameters["quality"] = args.quality
    if args.width:
        parameters["width"] = args.width
    if args.height:
        parameters["height"] = args.height
    return parameters


def run(args) -> int:
    client = GenerationClient(args.base_url)
    parameters = build_parameters(args) or None

    if args.mode == "text-to-video":
        result = client.text_to_video(args.prompt, parameters)
    elif args.mode == "image-to-video":
        if not args.image:
            print("--image is required for image-to-video", file=sys.stderr)
            return 2
        mime_type = "image/png" if args.image.lower().endswith(".png") else "image/jpeg"
        result = client.image_to_video(args.image, args.prompt, parameters, mime_type=mime_type)
    else:
        result = client.text_to_image(args.prompt, parameters)

    print(f"Job {result['jobId']}: {result['status']}")

    if result["status"] != "completed":
        def show_progress(status):
            print(f"  ... {status.get('progress', 0)}%")

        result = client.wait_for_job(result["jobId"], interval=args.interval, on_progress=show_progress)

    media_url = client.media_url(result["mediaUrl"])
    print(f"✓ Completed: {media_url}")

    if args.output:
        destination = args.output
        if os.path.isdir(destination):
            destination = os.path.join(destination, os.path.basename(result["mediaUrl"]))
        client.download_media(result["mediaUrl"], destination)
        print(f"✓ Saved: {destination}")

    return 0


def main():
    parser = argparse.ArgumentParser(description="Generate a video or image with the MediaGen API")
    parser.add_argument("mode", choices=MODES, help="Generation mode")
    parser.add_argument("prompt", help="Text prompt")
    parser.add_argument("--image", help="Source image for image-to-video")
    parser.add_argument("--duration", type=int, help="Video duration in seconds")
    parser.add_argument("--aspect-ratio", choices=["16:9", "9:16", "1:1"], help="Video aspect ratio")
    parser.add_argument("--quality", choices=["standard", "high"], help="Image quality")
    parser.add_argument("--width", type=int, help="Image width")
    parser.add_argument("--height", type=int, help="Image height")
    parser.add_argument(
        "--base-url",
        default=os.environ.get("MEDIAGEN_API_URL", "http://localhost:8000"),
        help="API base URL (default: $MEDIAGEN_API_URL or http://localhost:8000)"
    )
    parser.add_argument("--interval", type=float, default=5, help="Seconds between status polls")
    parser.add_argument("--output", "-o", help="Download the result to this file or directory")
    args = parser.parse_args()

    try:
        sys.exit(run(args))
    except GenerationClientError as e:
        print(f"✗ {e.code}: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
