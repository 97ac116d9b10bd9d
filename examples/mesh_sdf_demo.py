"""mesh_sdf_demo.py: OBJ/STL mesh to SDF demo.

Computes the signed distance field of a mesh on a cubical grid wrapped
around it, saves the volume and optionally plots the mid-Z slice.

Usage
-----
python examples/mesh_sdf_demo.py model.obj               # default --res 64
python examples/mesh_sdf_demo.py model.stl --res 32      # quick draft
python examples/mesh_sdf_demo.py                         # built-in octahedron

Outputs
-------
<name>_sdf.npy : (r, r, r) float32 signed distance field, indexed [z, y, x]
<name>_sdf.png : mid-Z slice heatmap (needs matplotlib)
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import numpy as np

from meshsdf import Mesh, MeshSDFError, ThreadPoolBackend, convert, load_obj, load_stl

_EXAMPLES_DIR = Path(__file__).parent


def _octahedron(radius: float = 1.0) -> Mesh:
    r = radius
    verts = [r, 0, 0, -r, 0, 0, 0, r, 0, 0, -r, 0, 0, 0, r, 0, 0, -r]
    faces = [
        0, 2, 4, 2, 1, 4, 1, 3, 4, 3, 0, 4,
        2, 0, 5, 1, 2, 5, 3, 1, 5, 0, 3, 5,
    ]
    return Mesh(verts, faces)


def _load(path: Path) -> Mesh:
    if path.suffix.lower() == ".stl":
        return load_stl(path)
    return load_obj(path)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mesh to SDF demo")
    parser.add_argument(
        "mesh", type=Path, nargs="?", default=None,
        help="OBJ or STL file (default: built-in octahedron)"
    )
    parser.add_argument(
        "--res", type=int, default=64,
        help="Voxels per axis (default 64; use 32 for a quick test)"
    )
    parser.add_argument(
        "--padding", type=float, default=0.1,
        help="Padding as a fraction of the largest mesh extent (default 0.1)"
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Thread pool size (default: chosen by concurrent.futures)"
    )
    parser.add_argument(
        "--out", type=Path, default=None,
        help="Output .npy path"
    )
    args = parser.parse_args()

    if args.mesh is None:
        mesh, stem = _octahedron(), "octahedron"
    else:
        try:
            mesh = _load(args.mesh)
        except (OSError, ValueError) as exc:
            print(f"ERROR: could not load {args.mesh}: {exc}", file=sys.stderr)
            sys.exit(1)
        stem = args.mesh.stem
    out = args.out or _EXAMPLES_DIR / f"{stem}_sdf.npy"
    print(f"Loaded {mesh.triangle_count} triangles, {mesh.vertex_count} vertices", flush=True)

    res = args.res
    print(f"Sampling {res}³ = {res**3:,} voxels × {mesh.triangle_count:,} triangles ...", flush=True)
    t0 = time.perf_counter()
    try:
        with ThreadPoolBackend(max_workers=args.workers) as backend:
            field = convert(mesh, resolution=res, padding=args.padding, backend=backend)
    except MeshSDFError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    with field:
        phi = field.volume
        print(
            f"Done in {time.perf_counter() - t0:.2f}s.  "
            f"min={phi.min():.4f}  max={phi.max():.4f}  voxel={field.voxel_size:.4g}"
        )
        field.save(str(out))
        print(f"Saved SDF to {out}")

        try:
            import matplotlib
            matplotlib.use("Agg")
            import matplotlib.pyplot as plt
        except ImportError:
            print("matplotlib not installed; skipping plot  (pip install .[viz])", file=sys.stderr)
            return

        lo, hi = field.bounds
        mid = phi[res // 2]
        clim = float(np.abs(mid).max()) or 1.0
        fig, ax = plt.subplots(figsize=(6, 5))
        im = ax.imshow(
            mid, origin="lower", cmap="RdBu", vmin=-clim, vmax=clim,
            extent=(lo.x, hi.x, lo.y, hi.y),
        )
        if res >= 2:
            # contour needs at least a 2x2 slice
            ax.contour(
                mid, levels=[0.0], colors="k", linewidths=1.0,
                extent=(lo.x, hi.x, lo.y, hi.y),
            )
        fig.colorbar(im, ax=ax, label="φ")
        ax.set_title(f"{stem}: mid-Z slice, {res}³ grid")
        ax.set_xlabel("x")
        ax.set_ylabel("y")
        png = out.with_suffix(".png")
        fig.savefig(png, dpi=120, bbox_inches="tight")
        plt.close(fig)
        print(f"Saved plot to {png}")


if __name__ == "__main__":
    main()
