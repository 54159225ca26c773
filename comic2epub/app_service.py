import os
from comic2epub.logger import app_logger
from comic2epub.config_manager import config_manager
from comic2epub.decode_pool import FailurePolicy
from comic2epub.dtos import ConversionOptions, ImageOptions
from comic2epub.epub_processor import EpubProcessor
from comic2epub.exceptions import ApplicationBaseException, ConfigError
from comic2epub.image_normalizer import ALGO_GRAY, DITHER_MODES
from comic2epub.profiles import get_profile
from comic2epub.sortpath import SORT_MODES

MIN_LIMIT_MB = 20

def default_output_path(input_path):
    """<input>.epub for a directory, <input without extension>.epub for a file."""
    input_base = os.path.normpath(input_path)
    if os.path.isdir(input_base):
        return f"{input_base}.epub"
    return f"{os.path.splitext(input_base)[0]}.epub"

def resolve_output_path(input_path, output_path=None):
    """
    Final .epub path. An output that doesn't end with .epub must be an existing
    directory; the default file name is placed inside it.
    """
    default_output = default_output_path(input_path)
    if not output_path:
        return default_output
    if os.path.splitext(output_path)[1].lower() == ".epub":
        return output_path
    if not os.path.isdir(output_path):
        raise ConfigError("output must be an existing dir or end with .epub")
    return os.path.join(output_path, os.path.basename(default_output))

def default_title(output_path):
    return os.path.splitext(os.path.basename(output_path))[0]

def validate_limit_mb(limit_mb):
    if limit_mb < 0 or 0 < limit_mb < MIN_LIMIT_MB:
        raise ConfigError(f"LimitMb should be 0 or >= {MIN_LIMIT_MB}")
    return limit_mb

def options_summary(options, profile):
    limit = "nolimit" if not options.limit_mb else f"{options.limit_mb} Mb"
    return (
        "Comic2Epub\n\n"
        "Options:\n"
        f"    Input   : {options.input}\n"
        f"    Output  : {options.output}\n"
        f"    Profile : {profile.code} - {profile.description} - {profile.width}x{profile.height} - {profile.gray_levels} levels of gray\n"
        f"    Author  : {options.author}\n"
        f"    Title   : {options.title}\n"
        f"    Quality : {options.quality}\n"
        f"    Crop    : {options.crop}\n"
        f"    Algo    : {options.algo}\n"
        f"    Dither  : {options.dither}\n"
        f"    LimitMb : {limit}\n"
        f"    Dry run : {options.dry}\n"
    )

class ApplicationService:
    def __init__(self):
        app_logger.debug("ApplicationService initialized.")

    def prepare_options(self, options: ConversionOptions):
        """
        Validate options and fill the unset ones from the configuration.

        Returns:
            tuple: (ConversionOptions, Profile, ImageOptions)
        """
        if not options.input:
            raise ConfigError("Missing input!")
        if not os.path.exists(options.input):
            raise ConfigError(f"Input not found: '{options.input}'")

        profile = get_profile(options.profile)
        options.output = resolve_output_path(options.input, options.output)
        options.title = options.title or default_title(options.output)
        options.author = options.author or config_manager.get("default_author")
        options.language = options.language or config_manager.get("default_language")
        if options.quality is None:
            options.quality = config_manager.get("default_quality")
        options.algo = options.algo or config_manager.get("default_algo")
        options.dither = options.dither or config_manager.get("default_dither")
        options.failure_policy = options.failure_policy or config_manager.get("failure_policy")
        if options.sort_path_mode is None:
            options.sort_path_mode = config_manager.get("sort_path_mode")

        if not 1 <= options.quality <= 100:
            raise ConfigError("quality should be between 1 and 100")
        if options.algo not in ALGO_GRAY:
            raise ConfigError(f"algo doesn't exist: '{options.algo}'")
        if options.dither not in DITHER_MODES:
            raise ConfigError(f"dither doesn't exist: '{options.dither}'")
        if options.sort_path_mode not in SORT_MODES:
            raise ConfigError(f"sort path mode should be one of {SORT_MODES}")
        if options.workers is not None and options.workers < 1:
            raise ConfigError("workers should be at least 1")
        try:
            FailurePolicy.parse(options.failure_policy)
        except ValueError as e:
            raise ConfigError(str(e))
        validate_limit_mb(options.limit_mb)

        image_options = ImageOptions(
            view_width=profile.width,
            view_height=profile.height,
            palette=profile.palette,
            quality=options.quality,
            crop=options.crop,
            algo=options.algo,
            dither=options.dither,
            letterbox=options.letterbox,
        )
        return options, profile, image_options

    def convert(self, options: ConversionOptions):
        """
        Convert options.input to an EPUB.

        Returns:
            EpubBuildResult: the build outcome (dry_run set when nothing was written).
        """
        options, profile, image_options = self.prepare_options(options)
        app_logger.info(options_summary(options, profile))
        try:
            processor = EpubProcessor(
                input_source=options.input,
                output_epub_path=options.output,
                image_options=image_options,
                title=options.title,
                author=options.author,
                language=options.language,
                limit_mb=options.limit_mb,
                workers=options.workers,
                sort_path_mode=options.sort_path_mode,
                dry=options.dry,
                failure_policy=options.failure_policy,
                show_progress=options.show_progress,
            )
            result = processor.create_epub()
            app_logger.info(f"Conversion done: {result.total_images} images -> {options.output}")
            return result
        except ApplicationBaseException as app_exc:
            app_logger.error(f"Application error: {app_exc.message}", exc_info=True)
            raise
        except Exception as e:
            # unexpected errors are wrapped so callers only deal with ApplicationBaseException
            app_logger.error(f"Unexpected error during conversion: {e}", exc_info=True)
            raise ApplicationBaseException(f"Unexpected error during EPUB generation: {e}")
