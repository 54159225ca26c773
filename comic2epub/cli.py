import argparse
import sys

from comic2epub.app_service import ApplicationService, MIN_LIMIT_MB
from comic2epub.dtos import ConversionOptions
from comic2epub.exceptions import ApplicationBaseException
from comic2epub.image_normalizer import ALGO_GRAY, DITHER_MODES
from comic2epub.logger import set_log_level
from comic2epub.config_manager import config_manager
from comic2epub.profiles import describe_profiles

def build_parser():
    parser = argparse.ArgumentParser(
        prog="comic2epub",
        description="Convert a comic (directory, cbz, zip, cbr, rar, pdf) to an e-reader EPUB.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-i", "--input", help="Source of comic to convert: directory, cbz, zip, cbr, rar, pdf")
    parser.add_argument("-o", "--output", help="Output of the epub (directory or epub): (default [INPUT].epub)")
    parser.add_argument("-p", "--profile", default="", help=f"Profile to use:\n{describe_profiles()}")
    parser.add_argument("--author", help="Author of the epub")
    parser.add_argument("--title", help="Title of the epub (default: output file name)")
    parser.add_argument("--quality", type=int, help="Quality of the image (1-100)")
    parser.add_argument("--nocrop", action="store_true", help="Disable cropping")
    parser.add_argument("--algo", choices=list(ALGO_GRAY), help="Algo for RGB to Grayscale")
    parser.add_argument("--dither", choices=list(DITHER_MODES), help="Dithering used to reduce gray levels")
    parser.add_argument("--letterbox", action="store_true", help="Pad every page to the device size")
    parser.add_argument("--limitmb", type=int, default=0,
                        help=f"Limit size of the ePub: Default nolimit (0), Minimum {MIN_LIMIT_MB}")
    parser.add_argument("--workers", type=int, help="Number of worker threads (default: CPU count)")
    parser.add_argument("--sort", type=int, choices=[0, 1, 2], dest="sort_path_mode",
                        help="Path sort: 0 alpha, 1 natural dirs, 2 natural dirs and files")
    parser.add_argument("--dry", action="store_true", help="List and order pages without converting")
    parser.add_argument("--skip-errors", action="store_true", help="Skip pages that fail to decode instead of stopping")
    parser.add_argument("--no-progress", action="store_true", help="Hide progress bars")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--list-profiles", action="store_true", help="Show the available profiles and exit")
    return parser

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_profiles:
        print(describe_profiles())
        return 0
    if not args.input:
        print("Missing input!", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        set_log_level(args.log_level or config_manager.get("log_level"))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    options = ConversionOptions(
        input=args.input,
        output=args.output,
        profile=args.profile,
        title=args.title,
        author=args.author,
        quality=args.quality,
        crop=not args.nocrop,
        algo=args.algo,
        dither=args.dither,
        letterbox=args.letterbox,
        limit_mb=args.limitmb,
        workers=args.workers,
        sort_path_mode=args.sort_path_mode,
        dry=args.dry,
        failure_policy="skip" if args.skip_errors else None,
        show_progress=not args.no_progress,
    )

    try:
        result = ApplicationService().convert(options)
    except ApplicationBaseException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if result.dry_run:
        print(f"Dry run: {result.total_images} images")
        for name in result.page_names:
            print(f"    {name}")
    else:
        status = "met" if result.limit_met else "NOT met (best effort)"
        print(f"{options.output}: {len(result.pages)} pages, quality {result.quality}, {result.size} bytes")
        if result.limit:
            print(f"Size limit {result.limit} bytes {status}")
    if result.skipped:
        print(f"Skipped {len(result.skipped)} pages: {', '.join(result.skipped)}", file=sys.stderr)
    return 0

if __name__ == "__main__":
    sys.exit(main())
