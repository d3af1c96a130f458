"""
Target billing codes for the price panel
"""

# Target MS-DRGs (inpatient): joint/spine, OB, cardiac, GI
TARGET_DRGS = [
    ("470", "Major hip/knee joint replacement"),
    ("473", "Cervical spinal fusion"),
    ("743", "Uterine & adnexa procedures (non-malignant)"),
    ("766", "Cesarean section w/o CC/MCC"),
    ("767", "Vaginal delivery w/o complicating diagnoses"),
    ("291", "Heart failure & shock w MCC"),
    ("292", "Heart failure & shock w CC"),
    ("329", "Major small & large bowel procedures w MCC"),
    ("330", "Major small & large bowel procedures w CC"),
    ("871", "Septicemia or severe sepsis w/o MV >96 hrs w MCC"),
]

# Target CPT/HCPCS (outpatient): ED, office visits, imaging, cardiac, GI, ortho, labs
TARGET_CPTS = [
    ("99213", "Office visit, established patient (level 3)"),
    ("99214", "Office visit, established patient (level 4)"),
    ("99215", "Office visit, established patient (level 5)"),
    ("99281", "ED visit (level 1)"),
    ("99282", "ED visit (level 2)"),
    ("99283", "ED visit (level 3)"),
    ("99284", "ED visit (level 4)"),
    ("99285", "ED visit (level 5)"),
    ("70553", "Brain MRI w/ & w/o contrast"),
    ("74177", "CT abdomen/pelvis w/ contrast"),
    ("27447", "Total knee arthroplasty"),
    ("29881", "Knee arthroscopy/meniscectomy"),
    ("43239", "Upper GI endoscopy w/ biopsy"),
    ("93000", "Electrocardiogram (ECG)"),
    ("93306", "Echocardiography, transthoracic"),
    ("93452", "Cardiac catheterization"),
    ("36415", "Venipuncture (blood draw)"),
    ("80053", "Comprehensive metabolic panel"),
    ("85025", "Complete blood count (CBC)"),
    ("71046", "Chest X-ray, 2 views"),
    ("72148", "MRI lumbar spine w/o contrast"),
    ("G0105", "Screening colonoscopy (high risk)"),
    ("G0121", "Screening colonoscopy (non-high risk)"),
]
