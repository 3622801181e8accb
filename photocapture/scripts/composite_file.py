"""
Composite a photo and a matte from disk.

Usage:
  python photocapture/scripts/composite_file.py photo.jpg matte.png out.png [matte_type] [exif_orientation]

matte_type defaults to "portrait"; exif_orientation is 1..8 (optional).
"""
import sys
from pathlib import Path

ROOT = Path(__file__).parents[2]
sys.path.insert(0, str(ROOT))

import cv2

from photocapture.imaging.compositor import MatteCompositor
from photocapture.services.status_store import StatusStore

if len(sys.argv) < 4:
    print(__doc__)
    sys.exit(2)

photo_path, matte_path, out_path = (Path(p) for p in sys.argv[1:4])
matte_type = sys.argv[4] if len(sys.argv) > 4 else "portrait"
orientation = int(sys.argv[5]) if len(sys.argv) > 5 else None

for path in (photo_path, matte_path):
    if not path.exists():
        print(f"[ERROR] {path} not found")
        sys.exit(1)

image = cv2.imread(str(photo_path), cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
matte = cv2.imread(str(matte_path), cv2.IMREAD_UNCHANGED)

status = StatusStore()
result = MatteCompositor(status).composite(image, matte, matte_type, orientation)
for line in status.logs:
    print(f"  {line}")

if result is None:
    print("[ERROR] composite skipped")
    sys.exit(1)

out_path.write_bytes(result.data)
print(f"Done: {result.kind} {matte_type} composite written to {out_path} ({len(result.data)} bytes)")
