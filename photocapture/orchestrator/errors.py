"""Error codes reported by a capture and what the processor does about each one.

Nothing here is raised past the processor: every code is logged, recorded on
the request, and mapped to a fixed action.
"""

ERR_PHOTO = "PHOTO_ERROR"                  # driver failed to process the photo
ERR_CAPTURE = "CAPTURE_ERROR"              # driver reported an error finishing the capture
ERR_MOVIE = "MOVIE_ERROR"                  # companion clip could not be produced
ERR_NO_PHOTO_DATA = "NO_PHOTO_DATA"        # finish arrived without primary bytes
ERR_MATTE = "MATTE_SKIPPED"                # one matte could not be composited
ERR_NOT_AUTHORIZED = "NOT_AUTHORIZED"      # asset library refused access
ERR_PERSISTENCE = "PERSISTENCE_FAILED"     # asset library write failed
ERR_CLEANUP = "CLEANUP_FAILED"             # temporary clip could not be removed
ERR_PROTOCOL = "PROTOCOL_VIOLATION"        # event after finish / duplicate event

# Actions
FINALIZE = "finalize"   # stop accumulating, go straight to finalize
SKIP = "skip"           # drop this one item, carry on
DEGRADE = "degrade"     # leave the optional field unset, carry on
LOG = "log"             # nothing else to do
IGNORE = "ignore"       # event is not acted upon

POLICY: dict[str, str] = {
    ERR_PHOTO: SKIP,
    ERR_CAPTURE: FINALIZE,
    ERR_MOVIE: DEGRADE,
    ERR_NO_PHOTO_DATA: FINALIZE,
    ERR_MATTE: SKIP,
    ERR_NOT_AUTHORIZED: FINALIZE,
    ERR_PERSISTENCE: FINALIZE,
    ERR_CLEANUP: LOG,
    ERR_PROTOCOL: IGNORE,
}


def policy_for(code: str) -> str:
    return POLICY.get(code, LOG)
