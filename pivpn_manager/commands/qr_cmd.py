import argparse
import sys

import qrcode
from qrcode.image.styledpil import StyledPilImage
from qrcode.image.styles.colormasks import HorizontalGradiantColorMask
from qrcode.image.styles.moduledrawers import RoundedModuleDrawer

from ..common import add_config_arg, require_and_load_vpn
from ..errors import ClientNotFoundError


def add_qr_cmd(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "qr",
        help="Show a client's configuration as a QR code",
        description="Prints the client's configuration as a QR code on the terminal, or saves it as a PNG.",
    )
    p.add_argument("name", help="Client name")
    p.add_argument("--png", default=None, help="Write a PNG image to this path instead of printing")
    add_config_arg(p)
    p.set_defaults(func=run_qr_cmd)


def run_qr_cmd(args: argparse.Namespace) -> int:
    vpn = require_and_load_vpn(args)
    if vpn is None:
        return 2
    try:
        client = vpn.find_client(args.name)
    except ClientNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 2

    qr = build_qr(client.export())
    png_path = getattr(args, "png", None)
    if png_path:
        save_styled_png(qr, png_path)
        print(f"QR code for '{client.name}' written to {png_path}")
    else:
        qr.print_ascii(out=sys.stdout)
    return 0


def build_qr(text: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_Q)
    qr.add_data(text)
    qr.make(fit=True)
    return qr


def save_styled_png(qr: qrcode.QRCode, path: str) -> None:
    # left (purple) -> right (blue) with rounded modules
    color_mask = HorizontalGradiantColorMask(
        back_color=(255, 255, 255),
        left_color=(128, 0, 255),
        right_color=(0, 123, 255),
    )
    img = qr.make_image(
        image_factory=StyledPilImage,
        module_drawer=RoundedModuleDrawer(),
        color_mask=color_mask,
    )
    img.save(path)
