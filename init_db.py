"""
Initialize database with sample data for the pharmacy reporting system
"""
from datetime import date, datetime, timedelta

from main import app, db
import models
from utils import COMPANY_SETTING_KEYS, DEFAULT_COMPANY_INFO, update_company_setting


def create_sample_data():
    with app.app_context():
        # Clear existing data
        db.drop_all()
        db.create_all()

        # Company settings used on receipts
        for db_key, info_key in COMPANY_SETTING_KEYS.items():
            result = update_company_setting(db_key, DEFAULT_COMPANY_INFO[info_key])
            if not result["success"]:
                print(f"⚠️ {result['message']}")

        # Create clients
        ana = models.Client(first_name='Ana', last_name='Quispe', ci='4455667', phone='71234567')
        luis = models.Client(first_name='Luis', last_name='Mamani', ci='5566778', phone='72345678')

        db.session.add_all([ana, luis])
        db.session.commit()

        # Create medicines
        today = date.today()
        medicines = [
            models.Medicine(code='PAR500', name='Paracetamol 500mg', stock=120, min_stock=30,
                            purchase_price=0.35, sale_price=0.60, expiry_date=today + timedelta(days=240)),
            models.Medicine(code='IBU400', name='Ibuprofeno 400mg', stock=12, min_stock=25,
                            purchase_price=0.50, sale_price=0.90, expiry_date=today + timedelta(days=20)),
            models.Medicine(code='AMX500', name='Amoxicilina 500mg', stock=8, min_stock=20,
                            purchase_price=1.10, sale_price=1.80, expiry_date=today + timedelta(days=90)),
            models.Medicine(code='LOR10', name='Loratadina 10mg', stock=45, min_stock=10,
                            purchase_price=0.40, sale_price=0.75, expiry_date=today + timedelta(days=10)),
            models.Medicine(code='OME20', name='Omeprazol 20mg', stock=0, min_stock=15,
                            purchase_price=0.80, sale_price=1.40, expiry_date=today + timedelta(days=400)),
        ]

        db.session.add_all(medicines)
        db.session.commit()

        # Create sales with their items
        now = datetime.now()
        sales_data = [
            (ana, now - timedelta(days=2), [(medicines[0], 10), (medicines[1], 2)]),
            (luis, now - timedelta(days=1), [(medicines[2], 3)]),
            (None, now, [(medicines[3], 1), (medicines[0], 4)]),
        ]

        for client, sale_date, lines in sales_data:
            sale = models.Sale(client_id=client.id if client else None, user_id='admin', sale_date=sale_date)
            db.session.add(sale)
            db.session.flush()

            total = 0.0
            for medicine, quantity in lines:
                subtotal = round(medicine.sale_price * quantity, 2)
                total += subtotal
                db.session.add(models.SaleItem(
                    sale_id=sale.id,
                    medicine_id=medicine.id,
                    quantity=quantity,
                    unit_price=medicine.sale_price,
                    subtotal=subtotal
                ))
            sale.total = round(total, 2)

        db.session.commit()

        # Stock movements
        db.session.add_all([
            models.StockEntry(medicine_id=medicines[0].id, user_id='admin', quantity=100,
                              entry_date=now - timedelta(days=5), unit_cost=0.35, notes='Compra a proveedor'),
            models.StockExit(medicine_id=medicines[3].id, user_id='admin', quantity=5,
                             exit_date=now - timedelta(days=3), reason='VENCIMIENTO'),
        ])
        db.session.commit()

        print("✅ Base de datos inicializada con datos de muestra")
        print("\n🏢 Configuración de empresa creada")
        print(f"👥 {len(sales_data)} ventas de muestra")
        print(f"💊 {len(medicines)} medicamentos configurados")


if __name__ == '__main__':
    create_sample_data()
