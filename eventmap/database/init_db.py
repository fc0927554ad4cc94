"""
Database bootstrap script.

Applies schema.sql and seeds the reference data the application needs:
- a default admin account
- event categories
- Vietnamese provinces/cities (regions)

Every step is idempotent, so the script can be re-run safely.

Usage:
    python -m eventmap.database.init_db
"""

import os
import sys
from pathlib import Path

from argon2 import PasswordHasher
from dotenv import load_dotenv

from eventmap.database.db_connection import get_db

load_dotenv()

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@eventmap.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

CATEGORIES = [
    ("Âm nhạc", "Các sự kiện âm nhạc, concert, live show"),
    ("Thể thao", "Các sự kiện thể thao, giải đấu"),
    ("Nghệ thuật", "Triển lãm, gallery, nghệ thuật"),
    ("Hội thảo", "Hội thảo, workshop, seminar"),
    ("Lễ hội", "Lễ hội, festival, sự kiện văn hóa"),
    ("Công nghệ", "Sự kiện công nghệ, IT, startup"),
    ("Giáo dục", "Sự kiện giáo dục, đào tạo"),
    ("Ẩm thực", "Food festival, cooking class"),
    ("Khác", "Các sự kiện khác"),
]

REGIONS = [
    ("Thành phố Hồ Chí Minh", "HCM"),
    ("Hà Nội", "HN"),
    ("Đà Nẵng", "DN"),
    ("Hải Phòng", "HP"),
    ("Cần Thơ", "CT"),
    ("An Giang", "AG"),
    ("Bà Rịa - Vũng Tàu", "BRVT"),
    ("Bắc Giang", "BG"),
    ("Bắc Kạn", "BK"),
    ("Bạc Liêu", "BL"),
    ("Bắc Ninh", "BN"),
    ("Bến Tre", "BT"),
    ("Bình Định", "BD"),
    ("Bình Dương", "BDG"),
    ("Bình Phước", "BP"),
    ("Bình Thuận", "BTH"),
    ("Cà Mau", "CM"),
    ("Cao Bằng", "CB"),
    ("Đắk Lắk", "DL"),
    ("Đắk Nông", "DNO"),
    ("Điện Biên", "DB"),
    ("Đồng Nai", "DNA"),
    ("Đồng Tháp", "DT"),
    ("Gia Lai", "GL"),
    ("Hà Giang", "HG"),
    ("Hà Nam", "HNA"),
    ("Hà Tĩnh", "HT"),
    ("Hải Dương", "HD"),
    ("Hậu Giang", "HGI"),
    ("Hòa Bình", "HB"),
    ("Hưng Yên", "HY"),
    ("Khánh Hòa", "KH"),
    ("Kiên Giang", "KG"),
    ("Kon Tum", "KT"),
    ("Lai Châu", "LC"),
    ("Lâm Đồng", "LD"),
    ("Lạng Sơn", "LS"),
    ("Lào Cai", "LO"),
    ("Long An", "LA"),
    ("Nam Định", "ND"),
    ("Nghệ An", "NA"),
    ("Ninh Bình", "NB"),
    ("Ninh Thuận", "NT"),
    ("Phú Thọ", "PT"),
    ("Phú Yên", "PY"),
    ("Quảng Bình", "QB"),
    ("Quảng Nam", "QN"),
    ("Quảng Ngãi", "QNG"),
    ("Quảng Ninh", "QNI"),
    ("Quảng Trị", "QT"),
    ("Sóc Trăng", "ST"),
    ("Sơn La", "SL"),
    ("Tây Ninh", "TN"),
    ("Thái Bình", "TB"),
    ("Thái Nguyên", "TNG"),
    ("Thanh Hóa", "TH"),
    ("Thừa Thiên Huế", "TTH"),
    ("Tiền Giang", "TG"),
    ("Trà Vinh", "TV"),
    ("Tuyên Quang", "TQ"),
    ("Vĩnh Long", "VL"),
    ("Vĩnh Phúc", "VP"),
    ("Yên Bái", "YB"),
]


def apply_schema(cur) -> None:
    """Run schema.sql against the open cursor."""
    cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))


def seed_admin(cur) -> bool:
    """
    Create the default admin account if the email is not taken.

    Returns:
        bool: True when a new admin row was inserted.
    """
    cur.execute("SELECT user_id FROM users WHERE email = %s;", (ADMIN_EMAIL,))
    if cur.fetchone():
        return False

    pw_hash = PasswordHasher().hash(ADMIN_PASSWORD)
    cur.execute(
        """
        INSERT INTO users (name, email, password_hash, role, is_verified)
        VALUES (%s, %s, %s, 'ADMIN', TRUE);
        """,
        ("Admin", ADMIN_EMAIL, pw_hash),
    )
    return True


def seed_categories(cur) -> None:
    for name, description in CATEGORIES:
        cur.execute(
            """
            INSERT INTO event_categories (name, description)
            VALUES (%s, %s)
            ON CONFLICT (name) DO NOTHING;
            """,
            (name, description),
        )


def seed_regions(cur) -> None:
    for name, code in REGIONS:
        cur.execute(
            """
            INSERT INTO regions (name, code)
            VALUES (%s, %s)
            ON CONFLICT (code) DO NOTHING;
            """,
            (name, code),
        )


def main() -> int:
    print("--- Initializing Event Map database ---")

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                apply_schema(cur)
                print("Schema applied.")

                if seed_admin(cur):
                    print(f"Admin user created: {ADMIN_EMAIL}")
                else:
                    print(f"Admin user already exists: {ADMIN_EMAIL}")

                seed_categories(cur)
                print(f"Event categories ensured ({len(CATEGORIES)}).")

                seed_regions(cur)
                print(f"Regions ensured ({len(REGIONS)}).")
            conn.commit()
    except Exception as e:
        print("\nDatabase initialization FAILED:")
        print(f" Error: {e}")
        return 1

    print("\nSeeding completed!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
